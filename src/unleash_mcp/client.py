"""Unleash Admin API client used by tools and resource readers."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .errors import UnleashAPIError
from .logging_setup import Logger

FLAG_TYPES = ("release", "experiment", "operational", "kill-switch", "permission")


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class Project(_ApiModel):
    """Unleash project metadata as returned by the Admin API."""

    id: str = Field(description="Project identifier", examples=["default"])
    name: str = Field(description="Project display name", examples=["Default"])
    description: str | None = Field(default=None, description="Project description")
    created_at: datetime | None = Field(
        default=None, alias="createdAt", description="Creation timestamp (ISO 8601)"
    )
    feature_count: int | None = Field(default=None, alias="featureCount")


class FeatureStrategy(_ApiModel):
    id: str | None = None
    name: str
    disabled: bool | None = None
    constraints: list[dict[str, Any]] = Field(default_factory=list)
    parameters: dict[str, Any] = Field(default_factory=dict)


class FeatureEnvironment(_ApiModel):
    """Per-environment state of a feature flag."""

    name: str
    environment: str | None = None
    type: str | None = None
    enabled: bool = False
    strategies: list[FeatureStrategy] = Field(default_factory=list)
    variants: list[dict[str, Any]] = Field(default_factory=list)

    def matches(self, environment: str) -> bool:
        target = environment.lower()
        return self.name.lower() == target or (self.environment or "").lower() == target


class FeatureFlag(_ApiModel):
    """Feature flag details.

    This is the source of truth for the single feature flag resource schema.
    """

    name: str = Field(description="Feature flag name", examples=["new-checkout-flow"])
    type: str | None = Field(default=None, description="Flag type", examples=["release"])
    description: str | None = Field(default=None)
    project: str | None = Field(default=None, description="Owning project id")
    enabled: bool | None = Field(default=None)
    stale: bool | None = Field(default=None)
    archived: bool | None = Field(default=None)
    impression_data: bool | None = Field(default=None, alias="impressionData")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    environments: list[FeatureEnvironment] = Field(default_factory=list)


def _error_from_response(response: httpx.Response) -> UnleashAPIError:
    message = response.reason_phrase or "Request failed"
    name: str | None = None
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        name = body.get("name") or None
        details = body.get("details")
        if body.get("message"):
            message = str(body["message"])
        elif isinstance(details, list) and details and isinstance(details[0], dict):
            message = str(details[0].get("message", message))
    elif response.text:
        message = response.text[:200]

    return UnleashAPIError(status=response.status_code, message=message, name=name)


class UnleashClient:
    """Wrap the Unleash Admin API calls needed by the MCP server.

    Mutating calls are simulated when ``dry_run`` is set; reads always hit
    the API.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        log: Logger,
        dry_run: bool = False,
    ) -> None:
        self._client = client
        self._dry_run = dry_run
        self._logger = log

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    @staticmethod
    def build_headers(access_token: str) -> dict[str, str]:
        return {
            "Authorization": access_token,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _feature_path(project_id: str, feature_name: str | None = None) -> str:
        path = f"/api/admin/projects/{quote(project_id, safe='')}/features"
        if feature_name is not None:
            path = f"{path}/{quote(feature_name, safe='')}"
        return path

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        self._logger.debug(f"Unleash {method} {path}")
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            raise _error_from_response(response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UnleashAPIError(
                status=response.status_code, message="Invalid JSON response"
            ) from exc

    async def list_projects(self) -> list[Project]:
        """Return every project visible to the access token."""
        payload = await self._request("GET", "/api/admin/projects")
        raw_projects = payload.get("projects", []) if isinstance(payload, dict) else []
        projects = [Project.model_validate(raw) for raw in raw_projects]
        self._logger.info(f"Retrieved {len(projects)} projects")
        return projects

    async def list_features(self, project_id: str) -> list[FeatureFlag]:
        """Return the feature flags of one project."""
        payload = await self._request("GET", self._feature_path(project_id))
        raw_features = payload.get("features", []) if isinstance(payload, dict) else []
        features = [FeatureFlag.model_validate(raw) for raw in raw_features]
        self._logger.info(f"Retrieved {len(features)} feature flags for project {project_id}")
        return features

    async def get_feature(self, project_id: str, feature_name: str) -> FeatureFlag:
        payload = await self._request("GET", self._feature_path(project_id, feature_name))
        return FeatureFlag.model_validate(payload)

    async def create_feature(self, project_id: str, payload: dict[str, Any]) -> FeatureFlag:
        """Create a feature flag, or simulate the creation in dry-run mode."""
        if self._dry_run:
            self._logger.info(f"[dry run] Would POST {self._feature_path(project_id)}: {payload}")
            return FeatureFlag.model_validate(
                {
                    **payload,
                    "project": project_id,
                    "enabled": False,
                    "createdAt": datetime.now(UTC).isoformat(),
                }
            )

        created = await self._request("POST", self._feature_path(project_id), json=payload)
        return FeatureFlag.model_validate(created)

    async def toggle_feature_environment(
        self, project_id: str, feature_name: str, environment: str, enabled: bool
    ) -> FeatureFlag:
        """Switch a flag on or off in one environment and return the refreshed flag."""
        action = "on" if enabled else "off"
        path = (
            f"{self._feature_path(project_id, feature_name)}"
            f"/environments/{quote(environment, safe='')}/{action}"
        )
        if self._dry_run:
            self._logger.info(f"[dry run] Would POST {path}")
            feature = await self.get_feature(project_id, feature_name)
            environments = [
                env.model_copy(update={"enabled": enabled}) if env.matches(environment) else env
                for env in feature.environments
            ]
            return feature.model_copy(update={"environments": environments})

        await self._request("POST", path)
        return await self.get_feature(project_id, feature_name)

    def _strategies_path(
        self, project_id: str, feature_name: str, environment: str, strategy_id: str | None = None
    ) -> str:
        path = (
            f"{self._feature_path(project_id, feature_name)}"
            f"/environments/{quote(environment, safe='')}/strategies"
        )
        if strategy_id is not None:
            path = f"{path}/{quote(strategy_id, safe='')}"
        return path

    async def add_feature_strategy(
        self, project_id: str, feature_name: str, environment: str, payload: dict[str, Any]
    ) -> FeatureStrategy:
        """Attach an activation strategy to one environment of a flag."""
        path = self._strategies_path(project_id, feature_name, environment)
        if self._dry_run:
            self._logger.info(f"[dry run] Would POST {path}: {payload}")
            return FeatureStrategy.model_validate({**payload, "id": "dry-run"})

        created = await self._request("POST", path, json=payload)
        return FeatureStrategy.model_validate(created)

    async def delete_feature_strategy(
        self, project_id: str, feature_name: str, environment: str, strategy_id: str
    ) -> None:
        path = self._strategies_path(project_id, feature_name, environment, strategy_id)
        if self._dry_run:
            self._logger.info(f"[dry run] Would DELETE {path}")
            return

        await self._request("DELETE", path)
