"""toggle_flag_environment: enable or disable a flag in one environment."""

from __future__ import annotations

from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

from ..context import ServerContext, ensure_environment, ensure_project_id
from ..progress import ProgressToken
from ..registry import ModelValidator, ToolDefinition, ToolResult
from .links import flag_links, flag_resource_link


class ToggleFlagEnvironmentInput(BaseModel):
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
        description="Environment to toggle (optional if UNLEASH_DEFAULT_ENVIRONMENT is set)",
    )
    enabled: bool = Field(description="Set to true to enable the flag, or false to disable it")


async def toggle_flag_environment(
    context: ServerContext,
    args: ToggleFlagEnvironmentInput,
    progress_token: ProgressToken | None,
) -> ToolResult:
    config = context.config
    project_id = ensure_project_id(args.project_id, config.default_project)
    environment = ensure_environment(args.environment, config.default_environment)
    action = "Enabling" if args.enabled else "Disabling"
    done = "Enabled" if args.enabled else "Disabled"

    await context.notify_progress(
        progress_token, 0, 100, f'{action} "{args.feature_name}" in "{environment}"...'
    )

    feature = await context.client.toggle_feature_environment(
        project_id, args.feature_name, environment, args.enabled
    )

    await context.notify_progress(
        progress_token, 100, 100, f'{done} "{args.feature_name}" in "{environment}"'
    )

    links = flag_links(config.base_url, project_id, args.feature_name)
    links["api"] = (
        f"{links['api']}/environments/{quote(environment, safe='')}"
        f"/{'on' if args.enabled else 'off'}"
    )
    prefix = "[DRY RUN] " if config.dry_run else ""
    state = next((env for env in feature.environments if env.matches(environment)), None)
    lines = [
        f'{prefix}{done} "{args.feature_name}" in "{environment}".',
        (
            f"Environment state: {'enabled' if state.enabled else 'disabled'} | "
            f"Strategies: {len(state.strategies)}"
            if state is not None
            else "Environment state could not be located in the response."
        ),
        f"View feature: {links['ui']}",
        f"Admin API: {links['api']}",
    ]

    context.logger.info(f"{done} {args.feature_name} in {environment} ({project_id})")
    return ToolResult(
        text="\n".join(lines),
        structured={
            "success": True,
            "dryRun": config.dry_run,
            "projectId": project_id,
            "featureName": feature.name,
            "environment": environment,
            "enabled": state.enabled if state is not None else args.enabled,
            "feature": feature.model_dump(mode="json", by_alias=True, exclude_none=True),
            "links": links,
        },
        resource_link=flag_resource_link(project_id, args.feature_name),
    )


toggle_flag_environment_tool = ToolDefinition(
    name="toggle_flag_environment",
    description=(
        "Enable or disable a feature flag in a specific environment using the Unleash "
        "Admin API."
    ),
    input_schema=ModelValidator(ToggleFlagEnvironmentInput),
    handler=toggle_flag_environment,
)
