"""Links and messages shared by the feature flag tools."""

from __future__ import annotations

import re
from urllib.parse import quote, urlsplit, urlunsplit

from ..registry import ResourceLink
from ..resources import JSON_MIME_TYPE, build_feature_flag_uri


def _collapse_slashes(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit(parts._replace(path=re.sub(r"/{2,}", "/", parts.path)))


def flag_ui_url(base_url: str, project_id: str, flag_name: str) -> str:
    """Unleash admin UI page for a feature flag."""
    return _collapse_slashes(
        f"{base_url}/projects/{quote(project_id, safe='')}/features/{quote(flag_name, safe='')}"
    )


def flag_api_url(base_url: str, project_id: str, flag_name: str) -> str:
    return _collapse_slashes(
        f"{base_url}/api/admin/projects/{quote(project_id, safe='')}"
        f"/features/{quote(flag_name, safe='')}"
    )


def flag_resource_link(project_id: str, flag_name: str) -> ResourceLink:
    return ResourceLink(
        uri=build_feature_flag_uri(project_id, flag_name),
        name=flag_name,
        mime_type=JSON_MIME_TYPE,
        title=f"Feature flag: {flag_name}",
    )


def flag_links(base_url: str, project_id: str, flag_name: str) -> dict[str, str]:
    return {
        "ui": flag_ui_url(base_url, project_id, flag_name),
        "api": flag_api_url(base_url, project_id, flag_name),
        "resourceUri": build_feature_flag_uri(project_id, flag_name),
    }
