"""Bill of materials tools."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from glados.teamdata.models import BomItem
from glados.teamdata.storage import TeamDataStore
from glados.tools.base import (
    ToolContext,
    ToolExecutionError,
    ToolExecutor,
    ToolNamespace,
    ToolSpec,
)


class BomListInput(BaseModel):
    subsystem: str | None = Field(default=None, description="Only items for this subsystem")


class BomStatusInput(BaseModel):
    pass


class BomShortagesInput(BaseModel):
    pass


def _percent(stocked: int, total: int) -> int:
    return 100 if total == 0 else round(stocked * 100 / total)


def summarize_bom(items: list[BomItem]) -> dict[str, Any]:
    """Stock coverage across the BOM, overall and per subsystem."""
    fully = sum(1 for i in items if i.quantity_on_hand >= i.quantity_needed)
    missing = sum(1 for i in items if i.quantity_on_hand == 0)
    partial = len(items) - fully - missing

    subsystems: dict[str, list[BomItem]] = {}
    for item in items:
        subsystems.setdefault(item.subsystem, []).append(item)

    return {
        "total_items": len(items),
        "fully_stocked": fully,
        "partially_stocked": partial,
        "missing": missing,
        "overall_percent": _percent(fully, len(items)),
        "by_subsystem": [
            {
                "subsystem": name,
                "items": len(group),
                "percent_complete": _percent(
                    sum(1 for i in group if i.quantity_on_hand >= i.quantity_needed),
                    len(group),
                ),
            }
            for name, group in sorted(subsystems.items())
        ],
    }


class BomExecutor(ToolExecutor):
    namespace = ToolNamespace.BOM

    def __init__(self, data: TeamDataStore) -> None:
        self._data = data

    @property
    def specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(
                name="bom_list",
                description="List bill-of-materials items with needed and on-hand quantities.",
                namespace=self.namespace,
                input_model=BomListInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="bom_status",
                description="Overall and per-subsystem stock coverage of the BOM.",
                namespace=self.namespace,
                input_model=BomStatusInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="bom_shortages",
                description="BOM items without enough stock, largest shortfall first.",
                namespace=self.namespace,
                input_model=BomShortagesInput,
                concurrent_safe=True,
            ),
        ]

    async def execute(self, name: str, params: BaseModel, context: ToolContext) -> dict[str, Any]:
        match params:
            case BomListInput(subsystem=subsystem):
                items = await self._data.list_bom(context.team_id, subsystem)
                return {"count": len(items), "items": [i.to_dict() for i in items]}
            case BomStatusInput():
                return summarize_bom(await self._data.list_bom(context.team_id))
            case BomShortagesInput():
                items = await self._data.list_bom(context.team_id)
                short = sorted(
                    (i for i in items if i.shortfall > 0),
                    key=lambda i: i.shortfall,
                    reverse=True,
                )
                return {
                    "count": len(short),
                    "shortages": [i.to_dict() | {"shortfall": i.shortfall} for i in short],
                }
        raise ToolExecutionError(f"Unknown bom tool: {name}")
