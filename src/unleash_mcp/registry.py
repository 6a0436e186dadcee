"""Tool registration and dispatch.

`ToolRegistry.invoke` is the boundary between the MCP transport and tool
handlers: arguments are validated, handlers awaited, and every failure is
normalized into a structured error result instead of propagating.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from .context import ServerContext
from .errors import (
    NormalizedError,
    ToolNotFoundError,
    normalize_error,
    violations_from_validation_error,
)
from .progress import ProgressToken

T_co = TypeVar("T_co", covariant=True)
ModelT = TypeVar("ModelT", bound=BaseModel)


class ToolRegistrationError(ValueError):
    """Raised at startup when two tools share a name."""


class InputValidator(Protocol[T_co]):
    """Anything that turns raw arguments into a typed value.

    ``parse`` raises `InvalidInputError` listing every violation.
    """

    def parse(self, raw: Any) -> T_co: ...

    def json_schema(self) -> dict[str, Any]: ...


class ModelValidator(Generic[ModelT]):
    """`InputValidator` backed by a pydantic model."""

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model

    def parse(self, raw: Any) -> ModelT:
        try:
            return self.model.model_validate({} if raw is None else raw)
        except ValidationError as exc:
            raise violations_from_validation_error(exc) from exc

    def json_schema(self) -> dict[str, Any]:
        return self.model.model_json_schema(by_alias=True)


@dataclass(frozen=True, slots=True)
class ResourceLink:
    uri: str
    name: str
    mime_type: str = "application/json"
    title: str | None = None


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Transport-neutral tool outcome."""

    text: str
    structured: Mapping[str, Any] = field(default_factory=dict)
    resource_link: ResourceLink | None = None
    is_error: bool = False

    @classmethod
    def failure(cls, error: NormalizedError) -> ToolResult:
        hint_suffix = f"\n\nHint: {error.hint}" if error.hint else ""
        return cls(
            text=f"Error: {error.message}{hint_suffix}",
            structured={"success": False, "error": error.to_payload()},
            is_error=True,
        )


ToolHandler = Callable[[ServerContext, Any, ProgressToken | None], Awaitable[ToolResult]]


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: InputValidator[Any]
    handler: ToolHandler


class ToolRegistry:
    """Name to handler mapping with a fault-proof `invoke`."""

    def __init__(self, context: ServerContext) -> None:
        self._context = context
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, definition: ToolDefinition) -> None:
        if definition.name in self._tools:
            raise ToolRegistrationError(f"Tool already registered: {definition.name}")
        self._tools[definition.name] = definition
        self._context.logger.debug(f"Registered tool {definition.name}")

    def register_all(self, definitions: Iterable[ToolDefinition]) -> None:
        for definition in definitions:
            self.register(definition)

    def definitions(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    async def invoke(
        self, name: str, raw_args: Any, progress_token: ProgressToken | None = None
    ) -> ToolResult:
        """Validate arguments, run the handler and return a well-formed result.

        Never raises (task cancellation aside); failures come back as
        `ToolResult.failure` after a single error log line.
        """
        try:
            definition = self._tools.get(name)
            if definition is None:
                raise ToolNotFoundError(name)
            args = definition.input_schema.parse(raw_args)
            result = await definition.handler(self._context, args, progress_token)
            if not isinstance(result, ToolResult):
                raise TypeError(f"Tool {name} returned {type(result).__name__}, not ToolResult")
            return result
        except Exception as exc:  # noqa: BLE001 - dispatch boundary
            normalized = normalize_error(exc)
            self._context.logger.error(
                f"Error in {name}: [{normalized.code.value}] {normalized.message}"
                + (f" (hint: {normalized.hint})" if normalized.hint else "")
            )
            return ToolResult.failure(normalized)
