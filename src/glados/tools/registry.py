"""Tool registry and dispatcher.

The registry is responsible for:
- Building the fixed tool catalog presented to the model
- Validating tool input against each tool's schema, once
- Routing a call to the executor that owns the tool's namespace
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from glados.logging import get_logger
from glados.teamdata.models import DomainError
from glados.tools.base import (
    ToolContext,
    ToolExecutionError,
    ToolExecutor,
    ToolNamespace,
    ToolSpec,
)

log = get_logger("glados.tools.registry")


def format_validation_error(exc: ValidationError) -> str:
    """Flatten pydantic errors into one line the model can act on."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error["loc"])
        parts.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(parts)


class ToolRegistry:
    """Fixed catalog of tools routed by namespace.

    Dispatch has no side effects of its own: everything observable happens
    inside the executor.
    """

    def __init__(self, executors: Iterable[ToolExecutor] = ()) -> None:
        self._executors: dict[ToolNamespace, ToolExecutor] = {}
        self._specs: dict[str, ToolSpec] = {}

        for executor in executors:
            self.register(executor)

        log.info(
            "tool_registry_initialized",
            tool_count=len(self._specs),
            namespaces=[ns.value for ns in self._executors],
        )

    def register(self, executor: ToolExecutor) -> None:
        """Add an executor and its specs.

        Raises:
            ValueError: If the namespace or a tool name is already taken, or a
                spec names a namespace other than its executor's.
        """
        if executor.namespace in self._executors:
            raise ValueError(f"Duplicate executor for namespace {executor.namespace}")
        specs = executor.specs
        for spec in specs:
            if spec.namespace != executor.namespace:
                raise ValueError(
                    f"Tool {spec.name} declares namespace {spec.namespace} "
                    f"but is owned by {executor.namespace}"
                )
            if spec.name in self._specs:
                raise ValueError(f"Duplicate tool name {spec.name}")

        self._executors[executor.namespace] = executor
        for spec in specs:
            self._specs[spec.name] = spec
        log.debug("tool_executor_registered", namespace=executor.namespace.value)

    def build_tool_catalog(self) -> list[ToolSpec]:
        """All tool specs, grouped by executor in registration order."""
        return list(self._specs.values())

    def to_model_tools(self) -> list[dict[str, Any]]:
        return [spec.to_model_tool() for spec in self._specs.values()]

    def get_spec(self, name: str) -> ToolSpec | None:
        return self._specs.get(name)

    async def dispatch(
        self, tool_name: str, raw_input: Any, context: ToolContext
    ) -> dict[str, Any]:
        """Validate and run one tool call.

        Refusals come back as ``{"error": ...}`` so the model can recover.
        Anything else an executor raises propagates to the caller.
        """
        spec = self._specs.get(tool_name)
        if spec is None:
            log.warning("unknown_tool_requested", tool=tool_name, team_id=context.team_id)
            return {"error": f"Unknown tool: {tool_name}"}

        try:
            params = spec.input_model.model_validate(raw_input or {})
        except ValidationError as e:
            log.info("tool_input_invalid", tool=tool_name, error_count=e.error_count())
            return {"error": f"Invalid input for {tool_name}: {format_validation_error(e)}"}

        executor = self._executors[spec.namespace]
        log.debug("dispatching_tool", tool=tool_name, namespace=spec.namespace.value)
        try:
            return await executor.execute(tool_name, params, context)
        except (ToolExecutionError, DomainError) as e:
            log.info("tool_refused", tool=tool_name, reason=str(e))
            return {"error": str(e)}
