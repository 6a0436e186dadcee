"""Error taxonomy and normalization for tool and resource failures."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError


class ErrorCode(str, Enum):
    """Kinds of failure surfaced to agents."""

    INVALID_INPUT = "InvalidInput"
    MISSING_CONFIGURATION = "MissingConfiguration"
    REMOTE_ERROR = "RemoteError"
    NOT_FOUND_TOOL = "NotFoundTool"
    UNKNOWN = "Unknown"


class NormalizedError(BaseModel):
    """Fixed-shape failure representation returned to MCP clients."""

    model_config = ConfigDict(frozen=True)

    code: ErrorCode
    message: str
    hint: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "hint": self.hint}


@dataclass(frozen=True, slots=True)
class Violation:
    """A single field-level input violation."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}" if self.field else self.message


class InvalidInputError(ValueError):
    """Raised when tool arguments or resource options fail validation."""

    def __init__(self, violations: Iterable[Violation]) -> None:
        self.violations = tuple(violations)
        super().__init__("; ".join(str(violation) for violation in self.violations))


class MissingConfigurationError(RuntimeError):
    """Raised when a required value was neither supplied nor configured."""

    def __init__(self, value_name: str, knob: str) -> None:
        self.value_name = value_name
        self.knob = knob
        super().__init__(
            f"{value_name} is required. Either provide it as a parameter or set {knob}."
        )


class ToolNotFoundError(LookupError):
    """Raised when an invocation names a tool that is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool not found: {name}")


@dataclass(slots=True)
class UnleashAPIError(Exception):
    """Represent a non-2xx Unleash Admin API response."""

    status: int
    message: str
    name: str | None = None

    def __str__(self) -> str:
        return self.message


class NormalizedFailure(Exception):
    """Exception wrapper carrying an already-normalized error."""

    def __init__(self, error: NormalizedError) -> None:
        self.error = error
        super().__init__(error.message)


_AUTH_HINT = (
    "Check that UNLEASH_PAT is a valid personal access token with access to the "
    "project, and that UNLEASH_BASE_URL points at your Unleash instance."
)
_CONNECTIVITY_HINT = (
    "Could not reach the Unleash Admin API. Check UNLEASH_BASE_URL and your network "
    "connection."
)
_NOT_FOUND_HINT = "Verify that the project and feature flag names exist in Unleash."


def _pydantic_violations(error: ValidationError) -> list[Violation]:
    violations: list[Violation] = []
    for detail in error.errors():
        field = ".".join(str(part) for part in detail.get("loc", ()))
        violations.append(Violation(field=field, message=str(detail.get("msg", "invalid"))))
    return violations


def violations_from_validation_error(error: ValidationError) -> InvalidInputError:
    """Convert a pydantic validation error into an `InvalidInputError`."""
    return InvalidInputError(_pydantic_violations(error))


def _invalid_input(violations: Iterable[Violation]) -> NormalizedError:
    joined = "; ".join(str(violation) for violation in violations) or "invalid arguments"
    return NormalizedError(code=ErrorCode.INVALID_INPUT, message=f"Invalid input: {joined}")


def _remote_hint(status: int | None) -> str | None:
    if status in (401, 403):
        return _AUTH_HINT
    if status == 404:
        return _NOT_FOUND_HINT
    return None


def _remote_from_api_error(error: UnleashAPIError) -> NormalizedError:
    label = f"{error.status} {error.name}" if error.name else str(error.status)
    return NormalizedError(
        code=ErrorCode.REMOTE_ERROR,
        message=f"Unleash API error ({label}): {error.message}",
        hint=_remote_hint(error.status),
    )


def _remote_from_status_error(error: httpx.HTTPStatusError) -> NormalizedError:
    status = error.response.status_code
    return NormalizedError(
        code=ErrorCode.REMOTE_ERROR,
        message=f"Unleash API error ({status}): {error.response.reason_phrase or error}",
        hint=_remote_hint(status),
    )


def normalize_error(error: object) -> NormalizedError:
    """Map any failure cause onto the fixed error taxonomy.

    Pure and idempotent: a `NormalizedError`, or a `NormalizedFailure`
    wrapping one, is returned unchanged.
    """
    if isinstance(error, NormalizedError):
        return error
    if isinstance(error, NormalizedFailure):
        return error.error
    if isinstance(error, InvalidInputError):
        return _invalid_input(error.violations)
    if isinstance(error, ValidationError):
        return _invalid_input(_pydantic_violations(error))
    if isinstance(error, MissingConfigurationError):
        return NormalizedError(
            code=ErrorCode.MISSING_CONFIGURATION,
            message=f"Missing configuration: {error.value_name} is required.",
            hint=f"Provide it as a parameter or set {error.knob}.",
        )
    if isinstance(error, UnleashAPIError):
        return _remote_from_api_error(error)
    if isinstance(error, httpx.HTTPStatusError):
        return _remote_from_status_error(error)
    if isinstance(error, httpx.RequestError):
        return NormalizedError(
            code=ErrorCode.REMOTE_ERROR,
            message=f"Unleash API request failed: {str(error) or type(error).__name__}",
            hint=_CONNECTIVITY_HINT,
        )
    if isinstance(error, ToolNotFoundError):
        return NormalizedError(code=ErrorCode.NOT_FOUND_TOOL, message=str(error))

    text = str(error)
    return NormalizedError(code=ErrorCode.UNKNOWN, message=text or type(error).__name__)
