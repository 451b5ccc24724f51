# registry.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class AgentResponse:
    text: str
    tool_results: list[Any] = field(default_factory=list)


class Runnable(Protocol):
    """Anything the routes and the task worker can drive: agents and workflows."""

    name: str

    async def generate(self, messages: list[dict[str, str]]) -> AgentResponse: ...


class Workflow(Runnable, Protocol):
    """A runnable triggered with structured data rather than chat messages."""

    title: str
    required_fields: dict[str, str]
    example: dict[str, Any]

    def validate(self, trigger_data: Any) -> str | None: ...


class UnknownTarget(LookupError):
    pass


class Registry:
    def __init__(
        self,
        agents: dict[str, Runnable] | None = None,
        workflows: dict[str, Workflow] | None = None,
    ) -> None:
        self._agents = dict(agents or {})
        self._workflows = dict(workflows or {})

    def get_agent(self, name: str) -> Runnable | None:
        return self._agents.get(name)

    def get_workflow(self, name: str) -> Workflow | None:
        return self._workflows.get(name)

    def resolve(self, name: str) -> Runnable:
        target = self._agents.get(name) or self._workflows.get(name)
        if target is None:
            raise UnknownTarget(f"Agent or workflow '{name}' not found")
        return target

    @property
    def agent_names(self) -> list[str]:
        return list(self._agents)

    @property
    def workflow_names(self) -> list[str]:
        return list(self._workflows)
