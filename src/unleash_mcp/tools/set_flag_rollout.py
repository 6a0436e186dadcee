"""set_flag_rollout: add a gradual rollout strategy to one environment."""

from __future__ import annotations

from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

from ..context import ServerContext, ensure_environment, ensure_project_id
from ..progress import ProgressToken
from ..registry import ModelValidator, ToolDefinition, ToolResult
from .links import flag_links, flag_resource_link

ROLLOUT_STRATEGY = "flexibleRollout"


class SetFlagRolloutInput(BaseModel):
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
        description="Environment to configure (optional if UNLEASH_DEFAULT_ENVIRONMENT is set)",
    )
    rollout_percentage: int = Field(
        ge=0,
        le=100,
        alias="rolloutPercentage",
        description="Percentage of users that should receive the flag (0-100)",
    )
    stickiness: str = Field(
        default="default", min_length=1, description="Context field used for stickiness"
    )
    group_id: str | None = Field(
        default=None,
        alias="groupId",
        description="Rollout group id (defaults to the feature name)",
    )


async def set_flag_rollout(
    context: ServerContext, args: SetFlagRolloutInput, progress_token: ProgressToken | None
) -> ToolResult:
    config = context.config
    project_id = ensure_project_id(args.project_id, config.default_project)
    environment = ensure_environment(args.environment, config.default_environment)

    await context.notify_progress(
        progress_token,
        0,
        100,
        f'Setting {args.rollout_percentage}% rollout for "{args.feature_name}" '
        f'in "{environment}"...',
    )

    strategy = await context.client.add_feature_strategy(
        project_id,
        args.feature_name,
        environment,
        {
            "name": ROLLOUT_STRATEGY,
            "parameters": {
                "rollout": str(args.rollout_percentage),
                "stickiness": args.stickiness,
                "groupId": args.group_id or args.feature_name,
            },
            "constraints": [],
        },
    )

    await context.notify_progress(
        progress_token, 100, 100, f'Rollout strategy added to "{args.feature_name}"'
    )

    links = flag_links(config.base_url, project_id, args.feature_name)
    links["api"] = f"{links['api']}/environments/{quote(environment, safe='')}/strategies"
    prefix = "[DRY RUN] " if config.dry_run else ""
    lines = [
        f'{prefix}Rolled out "{args.feature_name}" to {args.rollout_percentage}% '
        f'in "{environment}" (stickiness: {args.stickiness}).',
        f"Strategy ID: {strategy.id or 'unknown'}",
        f"View feature: {links['ui']}",
        f"Admin API: {links['api']}",
    ]

    context.logger.info(
        f"Set {args.rollout_percentage}% rollout for {args.feature_name} in {environment} "
        f"({project_id})"
    )
    return ToolResult(
        text="\n".join(lines),
        structured={
            "success": True,
            "dryRun": config.dry_run,
            "projectId": project_id,
            "featureName": args.feature_name,
            "environment": environment,
            "rolloutPercentage": args.rollout_percentage,
            "strategy": strategy.model_dump(mode="json", by_alias=True, exclude_none=True),
            "links": links,
        },
        resource_link=flag_resource_link(project_id, args.feature_name),
    )


set_flag_rollout_tool = ToolDefinition(
    name="set_flag_rollout",
    description=(
        "Add a gradual (flexibleRollout) activation strategy to a feature flag in one "
        "environment using the Unleash Admin API."
    ),
    input_schema=ModelValidator(SetFlagRolloutInput),
    handler=set_flag_rollout,
)
