"""get_flag_state: fetch a flag and summarize its per-environment state."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from ..client import FeatureEnvironment
from ..context import ServerContext, ensure_project_id
from ..progress import ProgressToken
from ..registry import ModelValidator, ToolDefinition, ToolResult
from .links import flag_links, flag_resource_link


class GetFlagStateInput(BaseModel):
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
        default=None, description="Optional environment filter (case-insensitive)"
    )


def summarize_environment(env: FeatureEnvironment) -> str:
    status = "enabled" if env.enabled else "disabled"
    active = sum(1 for strategy in env.strategies if not strategy.disabled)
    variants = f", {len(env.variants)} variants" if env.variants else ""
    return (
        f"{env.environment or env.name}: {status} "
        f"({active}/{len(env.strategies)} active strategies{variants})"
    )


async def get_flag_state(
    context: ServerContext, args: GetFlagStateInput, progress_token: ProgressToken | None
) -> ToolResult:
    config = context.config
    project_id = ensure_project_id(args.project_id, config.default_project)

    await context.notify_progress(
        progress_token,
        0,
        100,
        f'Fetching feature "{args.feature_name}" in project "{project_id}"...',
    )

    feature = await context.client.get_feature(project_id, args.feature_name)
    environments = feature.environments
    if args.environment:
        environments = [env for env in environments if env.matches(args.environment)]

    plural = "" if len(environments) == 1 else "s"
    await context.notify_progress(
        progress_token,
        100,
        100,
        f'Fetched feature "{args.feature_name}" ({len(environments)} environment{plural} '
        "considered)",
    )

    links = flag_links(config.base_url, project_id, args.feature_name)
    summaries = (
        "\n".join(f"- {summarize_environment(env)}" for env in environments)
        if environments
        else "- No environments matched the provided filters."
    )
    lines = [
        f'Feature "{feature.name}" ({feature.type or "unknown type"})',
        f"Enabled: {'yes' if feature.enabled else 'no'} | "
        f"Archived: {'yes' if feature.archived else 'no'} | "
        f"Impression data: {'on' if feature.impression_data else 'off'}",
        f"Project: {feature.project or project_id}",
        f"Environments:\n{summaries}",
        f"View feature: {links['ui']}",
        f"Admin API: {links['api']}",
    ]

    context.logger.info(
        f"Retrieved feature state for {args.feature_name}"
        + (f" (filtered to {args.environment})" if args.environment else "")
    )
    return ToolResult(
        text="\n".join(lines),
        structured={
            "success": True,
            "projectId": project_id,
            "featureName": feature.name,
            "environmentFilter": args.environment,
            "feature": feature.model_dump(mode="json", by_alias=True, exclude_none=True),
            "environments": [
                env.model_dump(mode="json", by_alias=True, exclude_none=True)
                for env in environments
            ],
            "links": links,
        },
        resource_link=flag_resource_link(project_id, args.feature_name),
    )


get_flag_state_tool = ToolDefinition(
    name="get_flag_state",
    description=(
        "Fetch the current feature flag metadata and environment strategies from the "
        "Unleash Admin API."
    ),
    input_schema=ModelValidator(GetFlagStateInput),
    handler=get_flag_state,
)
