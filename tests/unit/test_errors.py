"""Tests for error normalization."""

from __future__ import annotations

import httpx
import pytest
from pydantic import BaseModel, ValidationError

from unleash_mcp.errors import (
    ErrorCode,
    InvalidInputError,
    MissingConfigurationError,
    NormalizedError,
    NormalizedFailure,
    ToolNotFoundError,
    UnleashAPIError,
    Violation,
    normalize_error,
)


class _Args(BaseModel):
    name: str
    count: int


def _validation_error() -> ValidationError:
    with pytest.raises(ValidationError) as info:
        _Args.model_validate({"count": "many"})
    return info.value


def test_invalid_input_aggregates_every_violation() -> None:
    """Given several field violations, the message lists each of them."""
    error = InvalidInputError(
        [Violation("name", "Field required"), Violation("count", "must be positive")]
    )

    normalized = normalize_error(error)

    assert normalized.code is ErrorCode.INVALID_INPUT
    assert "name: Field required" in normalized.message
    assert "count: must be positive" in normalized.message
    assert normalized.hint is None


def test_pydantic_validation_error_maps_to_invalid_input() -> None:
    normalized = normalize_error(_validation_error())

    assert normalized.code is ErrorCode.INVALID_INPUT
    assert "name" in normalized.message
    assert "count" in normalized.message


def test_missing_configuration_names_value_and_knob() -> None:
    normalized = normalize_error(
        MissingConfigurationError("Project ID", "UNLEASH_DEFAULT_PROJECT")
    )

    assert normalized.code is ErrorCode.MISSING_CONFIGURATION
    assert "Project ID" in normalized.message
    assert normalized.hint is not None
    assert "UNLEASH_DEFAULT_PROJECT" in normalized.hint


@pytest.mark.parametrize("status", [401, 403])
def test_remote_auth_failures_carry_credential_hint(status: int) -> None:
    normalized = normalize_error(UnleashAPIError(status=status, message="Unauthorized"))

    assert normalized.code is ErrorCode.REMOTE_ERROR
    assert str(status) in normalized.message
    assert normalized.hint is not None
    assert "UNLEASH_PAT" in normalized.hint


def test_remote_server_error_has_status_and_no_hint() -> None:
    normalized = normalize_error(
        UnleashAPIError(status=500, message="Internal failure", name="InternalError")
    )

    assert normalized.code is ErrorCode.REMOTE_ERROR
    assert "500 InternalError" in normalized.message
    assert "Internal failure" in normalized.message
    assert normalized.hint is None


def test_http_status_error_maps_to_remote_error() -> None:
    request = httpx.Request("GET", "https://unleash.example.com/api/admin/projects")
    response = httpx.Response(403, request=request)
    error = httpx.HTTPStatusError("forbidden", request=request, response=response)

    normalized = normalize_error(error)

    assert normalized.code is ErrorCode.REMOTE_ERROR
    assert "403" in normalized.message
    assert normalized.hint is not None


def test_transport_failure_carries_connectivity_hint() -> None:
    request = httpx.Request("GET", "https://unleash.example.com/api/admin/projects")
    normalized = normalize_error(httpx.ConnectError("connection refused", request=request))

    assert normalized.code is ErrorCode.REMOTE_ERROR
    assert "connection refused" in normalized.message
    assert normalized.hint is not None
    assert "UNLEASH_BASE_URL" in normalized.hint


def test_tool_not_found_is_its_own_kind() -> None:
    normalized = normalize_error(ToolNotFoundError("does_not_exist"))

    assert normalized.code is ErrorCode.NOT_FOUND_TOOL
    assert "does_not_exist" in normalized.message


def test_unrecognized_cause_is_stringified() -> None:
    normalized = normalize_error(RuntimeError("boom"))

    assert normalized == NormalizedError(code=ErrorCode.UNKNOWN, message="boom")


def test_unrecognized_cause_without_text_uses_type_name() -> None:
    assert normalize_error(KeyError()).message == "KeyError"


def test_normalization_is_idempotent() -> None:
    once = normalize_error(UnleashAPIError(status=401, message="Unauthorized"))

    assert normalize_error(once) is once
    assert normalize_error(NormalizedFailure(once)) is once


def test_normalized_error_is_immutable() -> None:
    normalized = normalize_error(RuntimeError("boom"))

    with pytest.raises(ValidationError):
        normalized.message = "changed"  # type: ignore[misc]
