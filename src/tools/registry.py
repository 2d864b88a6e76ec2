from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Type

from pydantic import BaseModel


@dataclass(frozen=True)
class ToolSpec:
    """
    One registry entry: the pydantic input model validates, `invoke(client, params)` runs.
    """
    name: str
    description: str
    input_model: Type[BaseModel]
    invoke: Callable[[Any, Dict[str, Any]], Any]

    def validate(self, params: Any) -> Dict[str, Any]:
        """Raises pydantic.ValidationError; returns the params the client receives."""
        model = self.input_model.model_validate(params)
        return model.model_dump(exclude_none=True)

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_model.model_json_schema(by_alias=True),
        }


def build_registry(specs: Iterable[ToolSpec]) -> Mapping[str, ToolSpec]:
    registry: Dict[str, ToolSpec] = {}
    for spec in specs:
        if spec.name in registry:
            raise ValueError(f"Duplicate tool name: {spec.name}")
        registry[spec.name] = spec
    return MappingProxyType(registry)


def default_registry() -> Mapping[str, ToolSpec]:
    from src.tools.create_issue import CREATE_ISSUE
    from src.tools.list_issues import LIST_ISSUES

    return build_registry([LIST_ISSUES, CREATE_ISSUE])
