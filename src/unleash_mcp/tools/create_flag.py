"""create_flag: create a feature flag through the Unleash Admin API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ..context import ServerContext, ensure_project_id
from ..progress import ProgressToken
from ..registry import ModelValidator, ToolDefinition, ToolResult
from .links import flag_links, flag_resource_link

FlagType = Literal["release", "experiment", "operational", "kill-switch", "permission"]


class CreateFlagInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: str | None = Field(
        default=None,
        alias="projectId",
        description="Project ID (optional if UNLEASH_DEFAULT_PROJECT is set)",
    )
    name: str = Field(
        min_length=1,
        max_length=100,
        pattern=r"^[A-Za-z0-9][A-Za-z0-9._~-]*$",
        description="Feature flag name (URL-friendly, unique within the instance)",
    )
    type: FlagType = Field(
        default="release",
        description="Flag type: release, experiment, operational, kill-switch or permission",
    )
    description: str = Field(min_length=1, description="What the flag guards and why")
    impression_data: bool = Field(
        default=False,
        alias="impressionData",
        description="Emit impression events when the flag is evaluated",
    )


def format_flag_created_message(
    flag_name: str, project_id: str, url: str, dry_run: bool
) -> str:
    if dry_run:
        return (
            f'[DRY RUN] Would create feature flag "{flag_name}" in project "{project_id}".\n'
            f"URL: {url}"
        )
    return (
        f'Successfully created feature flag "{flag_name}" in project "{project_id}".\n'
        f"View in Unleash: {url}"
    )


async def create_flag(
    context: ServerContext, args: CreateFlagInput, progress_token: ProgressToken | None
) -> ToolResult:
    config = context.config
    project_id = ensure_project_id(args.project_id, config.default_project)

    await context.notify_progress(
        progress_token, 0, 100, f'Creating feature flag "{args.name}" in project "{project_id}"...'
    )

    feature = await context.client.create_feature(
        project_id,
        {
            "name": args.name,
            "type": args.type,
            "description": args.description,
            "impressionData": args.impression_data,
        },
    )

    await context.notify_progress(
        progress_token, 100, 100, f'Feature flag "{args.name}" ready in project "{project_id}"'
    )

    links = flag_links(config.base_url, project_id, args.name)
    context.logger.info(
        f"{'[dry run] ' if config.dry_run else ''}Created feature flag {args.name} in {project_id}"
    )
    return ToolResult(
        text=format_flag_created_message(args.name, project_id, links["ui"], config.dry_run),
        structured={
            "success": True,
            "dryRun": config.dry_run,
            "projectId": project_id,
            "flag": feature.model_dump(mode="json", by_alias=True, exclude_none=True),
            "links": links,
        },
        resource_link=flag_resource_link(project_id, args.name),
    )


create_flag_tool = ToolDefinition(
    name="create_flag",
    description=(
        "Create a feature flag in Unleash via the Admin API. Choose the type that matches "
        "the flag's purpose (release, experiment, operational, kill-switch, permission)."
    ),
    input_schema=ModelValidator(CreateFlagInput),
    handler=create_flag,
)
