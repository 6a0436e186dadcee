"""remove_flag_strategy: delete one activation strategy from an environment."""

from __future__ import annotations

from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

from ..context import ServerContext, ensure_environment, ensure_project_id
from ..progress import ProgressToken
from ..registry import ModelValidator, ToolDefinition, ToolResult
from .links import flag_links, flag_resource_link


class RemoveFlagStrategyInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: str | None = Field(
        default=None,
        alias="projectId",
        description=(
            "Project ID where the feature flag resides "
            "(optional if UNLEASH_DEFAULT_PROJECT is set)"
        ),
    )
    feature_name: str = Field(min_length=1, alias="featureName", description="Feature flag name")
    environment: str | None = Field(
        default=None,
        description=(
            "Environment holding the strategy "
            "(optional if UNLEASH_DEFAULT_ENVIRONMENT is set)"
        ),
    )
    strategy_id: str = Field(
        min_length=1,
        alias="strategyId",
        description="ID of the strategy to remove (see get_flag_state)",
    )


async def remove_flag_strategy(
    context: ServerContext, args: RemoveFlagStrategyInput, progress_token: ProgressToken | None
) -> ToolResult:
    config = context.config
    project_id = ensure_project_id(args.project_id, config.default_project)
    environment = ensure_environment(args.environment, config.default_environment)

    await context.notify_progress(
        progress_token,
        0,
        100,
        f'Removing strategy "{args.strategy_id}" from "{args.feature_name}" in "{environment}"...',
    )

    await context.client.delete_feature_strategy(
        project_id, args.feature_name, environment, args.strategy_id
    )

    await context.notify_progress(
        progress_token, 100, 100, f'Removed strategy "{args.strategy_id}"'
    )

    links = flag_links(config.base_url, project_id, args.feature_name)
    links["api"] = (
        f"{links['api']}/environments/{quote(environment, safe='')}"
        f"/strategies/{quote(args.strategy_id, safe='')}"
    )
    prefix = "[DRY RUN] " if config.dry_run else ""
    lines = [
        f'{prefix}Removed strategy "{args.strategy_id}" from "{args.feature_name}" '
        f'in "{environment}".',
        f"View feature: {links['ui']}",
        f"Admin API: {links['api']}",
    ]

    context.logger.info(
        f"Removed strategy {args.strategy_id} from {args.feature_name} in {environment}"
    )
    return ToolResult(
        text="\n".join(lines),
        structured={
            "success": True,
            "dryRun": config.dry_run,
            "projectId": project_id,
            "featureName": args.feature_name,
            "environment": environment,
            "strategyId": args.strategy_id,
            "links": links,
        },
        resource_link=flag_resource_link(project_id, args.feature_name),
    )


remove_flag_strategy_tool = ToolDefinition(
    name="remove_flag_strategy",
    description=(
        "Remove an activation strategy from a feature flag environment using the Unleash "
        "Admin API."
    ),
    input_schema=ModelValidator(RemoveFlagStrategyInput),
    handler=remove_flag_strategy,
)
