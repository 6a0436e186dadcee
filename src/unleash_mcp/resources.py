"""URI-template addressing for read-only Unleash resources.

Three template shapes are exposed, most specific first:

- single flag: ``unleash://projects/{projectId}/feature-flags/{flagName}``
- flags of a project: ``unleash://projects/{projectId}/feature-flags{?limit,order,offset}``
- projects: ``unleash://projects{?limit,order,offset}``

Collections accept ``limit`` (positive, unbounded by default), ``order``
(``asc``/``desc`` by creation time) and ``offset`` (non-negative).
Out-of-range values are rejected, never clamped.
"""

from __future__ import annotations

import json
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal
from urllib.parse import parse_qs, quote, unquote

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .context import ServerContext
from .errors import (
    InvalidInputError,
    NormalizedError,
    NormalizedFailure,
    Violation,
    normalize_error,
    violations_from_validation_error,
)

JSON_MIME_TYPE = "application/json"

PROJECTS_RESOURCE_URI = "unleash://projects"
PROJECTS_RESOURCE_TEMPLATE = "unleash://projects{?limit,order,offset}"
FEATURE_FLAGS_RESOURCE_TEMPLATE = (
    "unleash://projects/{projectId}/feature-flags{?limit,order,offset}"
)
FEATURE_FLAG_RESOURCE_URI = "unleash://projects/{projectId}/feature-flags/{flagName}"

_TOKEN = re.compile(r"\{(\?)?([^{}]+)\}")
_ORDER_ALIASES = {"ascending": "asc", "descending": "desc"}


class ResourceRegistrationError(ValueError):
    """Raised when a template would overlap an existing one."""


class ResourceReadError(NormalizedFailure):
    """A resource read failed; carries the normalized error."""


class CollectionOptions(BaseModel):
    """Pagination options parsed from a collection URI query string."""

    model_config = ConfigDict(frozen=True)

    limit: int | None = Field(default=None, gt=0)
    order: Literal["asc", "desc"] = "asc"
    offset: int = Field(default=0, ge=0)

    @field_validator("order", mode="before")
    @classmethod
    def _normalize_order(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _ORDER_ALIASES.get(lowered, lowered)
        return value


def parse_collection_options(query: str) -> CollectionOptions:
    """Parse ``limit``/``order``/``offset`` from a raw query string.

    Unknown keys are ignored; repeated keys keep the last value.
    """
    params = parse_qs(query, keep_blank_values=True)
    raw = {
        key: values[-1]
        for key, values in params.items()
        if key in CollectionOptions.model_fields and values
    }
    try:
        return CollectionOptions.model_validate(raw)
    except ValidationError as exc:
        raise violations_from_validation_error(exc) from exc


def parse_no_options(query: str) -> None:
    return None


@dataclass(frozen=True, slots=True)
class ResourceContent:
    """One content block returned for a resource read."""

    uri: str
    mime_type: str
    text: str


def json_content(uri: str, payload: Any) -> ResourceContent:
    return ResourceContent(
        uri=uri, mime_type=JSON_MIME_TYPE, text=json.dumps(payload, indent=2, default=str)
    )


ResourceReader = Callable[[ServerContext, Mapping[str, str], Any], Awaitable[ResourceContent]]
OptionsParser = Callable[[str], Any]


class ResourceTemplate:
    """A URI template with positional placeholders and an options parser."""

    def __init__(
        self,
        name: str,
        uri_template: str,
        reader: ResourceReader,
        *,
        description: str = "",
        options_parser: OptionsParser = parse_no_options,
        mime_type: str = JSON_MIME_TYPE,
    ) -> None:
        self.name = name
        self.uri_template = uri_template
        self.reader = reader
        self.description = description
        self.options_parser = options_parser
        self.mime_type = mime_type

        pattern: list[str] = []
        shape: list[str] = []
        placeholders: list[str] = []
        literal_length = 0
        position = 0
        for token in _TOKEN.finditer(uri_template):
            literal = uri_template[position : token.start()]
            pattern.append(re.escape(literal))
            shape.append(literal)
            literal_length += len(literal)
            position = token.end()
            if token.group(1):
                continue
            placeholder = token.group(2)
            if placeholder in placeholders:
                raise ResourceRegistrationError(
                    f"Duplicate placeholder {placeholder!r} in {uri_template}"
                )
            placeholders.append(placeholder)
            pattern.append(f"(?P<{placeholder}>[^/?#]*)")
            shape.append("{}")
        tail = uri_template[position:]
        pattern.append(re.escape(tail))
        shape.append(tail)
        literal_length += len(tail)

        self.placeholders: tuple[str, ...] = tuple(placeholders)
        self.shape = "".join(shape)
        self.specificity = (len(placeholders), literal_length)
        self._pattern = re.compile("".join(pattern))

    def __repr__(self) -> str:
        return f"ResourceTemplate({self.name!r}, {self.uri_template!r})"

    def match(self, uri: str) -> dict[str, str] | None:
        """Return raw placeholder values when ``uri`` fits this template."""
        path, _, _query = uri.split("#", 1)[0].partition("?")
        if path.endswith("/"):
            path = path[:-1]
        found = self._pattern.fullmatch(path)
        return found.groupdict() if found else None


@dataclass(frozen=True, slots=True)
class ResolvedResource:
    template: ResourceTemplate
    placeholders: Mapping[str, str]
    options: Any


class ResourceRegistry:
    """Resolve resource URIs to templates and read them through the context."""

    def __init__(self, context: ServerContext) -> None:
        self._context = context
        self._templates: list[ResourceTemplate] = []

    def register(self, template: ResourceTemplate) -> None:
        for existing in self._templates:
            if existing.name == template.name:
                raise ResourceRegistrationError(f"Resource already registered: {template.name}")
            if existing.shape == template.shape:
                raise ResourceRegistrationError(
                    f"{template.uri_template} overlaps {existing.uri_template}"
                )
        self._templates.append(template)
        self._templates.sort(key=lambda item: item.specificity, reverse=True)

    def templates(self) -> list[ResourceTemplate]:
        """Registered templates, most specific first."""
        return list(self._templates)

    def resolve(self, uri: str) -> ResolvedResource:
        """Find the single template matching ``uri`` and parse its parts."""
        query = uri.split("#", 1)[0].partition("?")[2]
        for template in self._templates:
            raw = template.match(uri)
            if raw is None:
                continue
            placeholders = {key: unquote(value) for key, value in raw.items()}
            empty = [key for key, value in placeholders.items() if not value.strip()]
            if empty:
                raise InvalidInputError(
                    Violation(field=key, message=f"missing from resource URI {uri}")
                    for key in empty
                )
            return ResolvedResource(template, placeholders, template.options_parser(query))

        raise InvalidInputError([Violation(field="uri", message=f"Unknown resource URI: {uri}")])

    async def read(self, uri: str) -> ResourceContent:
        """Read one resource, raising `ResourceReadError` on any failure."""
        try:
            resolved = self.resolve(uri)
            return await resolved.template.reader(
                self._context, resolved.placeholders, resolved.options
            )
        except Exception as exc:  # noqa: BLE001 - resource boundary
            normalized: NormalizedError = normalize_error(exc)
            self._context.logger.error(
                f"Error reading {uri}: [{normalized.code.value}] {normalized.message}"
            )
            raise ResourceReadError(normalized) from exc


def build_feature_flags_uri(project_id: str) -> str:
    return f"unleash://projects/{quote(project_id, safe='')}/feature-flags"


def build_feature_flag_uri(project_id: str, flag_name: str) -> str:
    """Single feature flag resource URI, used for tool resource links."""
    return f"{build_feature_flags_uri(project_id)}/{quote(flag_name, safe='')}"


def _as_json_data(item: Any) -> dict[str, Any]:
    if isinstance(item, BaseModel):
        return item.model_dump(mode="json", by_alias=True, exclude_none=True)
    return dict(item)


def _created_timestamp(value: Any) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value).timestamp()
        except ValueError:
            return float("-inf")
    return float("-inf")


def paginate_items(
    items: list[dict[str, Any]], options: CollectionOptions, *, identifier: str
) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    """Order items by creation time, slice with limit/offset and emit metadata."""
    total = len(items)
    ordered = sorted(
        items,
        key=lambda item: (_created_timestamp(item.get("createdAt")), str(item.get(identifier))),
        reverse=options.order == "desc",
    )
    start = options.offset
    end = None if options.limit is None else start + options.limit
    return ordered[start:end], {
        "total": total,
        "offset": start,
        "limit": options.limit,
        "order": options.order,
        "truncated": end is not None and total > end,
    }


async def read_projects(
    context: ServerContext, placeholders: Mapping[str, str], options: CollectionOptions
) -> ResourceContent:
    projects = [_as_json_data(project) for project in await context.client.list_projects()]
    items, meta = paginate_items(projects, options, identifier="id")
    return json_content(PROJECTS_RESOURCE_URI, {"items": items, "meta": meta})


async def read_feature_flags(
    context: ServerContext, placeholders: Mapping[str, str], options: CollectionOptions
) -> ResourceContent:
    project_id = placeholders["projectId"]
    flags = [_as_json_data(flag) for flag in await context.client.list_features(project_id)]
    items, meta = paginate_items(flags, options, identifier="name")
    return json_content(
        build_feature_flags_uri(project_id),
        {"projectId": project_id, "items": items, "meta": meta},
    )


async def read_feature_flag(
    context: ServerContext, placeholders: Mapping[str, str], options: None
) -> ResourceContent:
    project_id = placeholders["projectId"]
    flag_name = placeholders["flagName"]
    flag = await context.client.get_feature(project_id, flag_name)
    return json_content(build_feature_flag_uri(project_id, flag_name), _as_json_data(flag))


def default_resource_templates() -> list[ResourceTemplate]:
    return [
        ResourceTemplate(
            "unleash-projects",
            PROJECTS_RESOURCE_TEMPLATE,
            read_projects,
            description=(
                "Unleash projects. Use limit to control page size, order=asc|desc to sort "
                "by creation time, and offset to paginate."
            ),
            options_parser=parse_collection_options,
        ),
        ResourceTemplate(
            "unleash-feature-flags-by-project",
            FEATURE_FLAGS_RESOURCE_TEMPLATE,
            read_feature_flags,
            description=(
                "Feature flags for a specific Unleash project. Replace {projectId}; optional "
                "limit/order/offset parameters paginate flags by creation time."
            ),
            options_parser=parse_collection_options,
        ),
        ResourceTemplate(
            "unleash-feature-flag",
            FEATURE_FLAG_RESOURCE_URI,
            read_feature_flag,
            description="Single feature flag resource.",
        ),
    ]


def build_resource_registry(context: ServerContext) -> ResourceRegistry:
    registry = ResourceRegistry(context)
    for template in default_resource_templates():
        registry.register(template)
    return registry
