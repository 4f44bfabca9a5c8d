from __future__ import annotations
from typing import Any, Mapping, Protocol
from dataclasses import dataclass, field
from graphql import DocumentNode, print_ast


@dataclass(frozen=True)
class Operation:
    """A parsed GraphQL operation as received from a client."""

    document: DocumentNode
    variables: Mapping[str, Any] = field(default_factory=dict)
    operation_name: str | None = None
    extensions: Mapping[str, Any] = field(default_factory=dict)

    @property
    def query(self) -> str:
        # The upstream only speaks text
        return print_ast(self.document)


def as_error(error: Any) -> dict[str, Any]:
    # Upstreams occasionally report bare strings instead of error objects
    if isinstance(error, Mapping):
        return dict(error)
    return {"message": str(error)}


@dataclass(frozen=True)
class ExecutionResult:
    data: Any = None
    errors: tuple[Mapping[str, Any], ...] | None = None
    extensions: Mapping[str, Any] | None = None
    has_data: bool = True

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> ExecutionResult:
        errors = payload.get("errors")
        extensions = payload.get("extensions")
        if errors and not isinstance(errors, list):
            errors = [errors]
        return cls(
            data=payload.get("data"),
            errors=tuple(as_error(error) for error in errors) if errors else None,
            extensions=extensions if isinstance(extensions, Mapping) and extensions else None,
            has_data="data" in payload,
        )

    @classmethod
    def from_errors(cls, *errors: Mapping[str, Any]) -> ExecutionResult:
        return cls(errors=tuple(errors), has_data=False)

    @property
    def formatted(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.has_data:
            result["data"] = self.data
        if self.errors:
            result["errors"] = [as_error(error) for error in self.errors]
        if self.extensions:
            result["extensions"] = dict(self.extensions)
        return result


class Executor(Protocol):
    async def execute(
        self, operation: Operation, headers: Mapping[str, str] | None = None
    ) -> ExecutionResult: ...
