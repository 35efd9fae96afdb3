"""Parts inventory tools."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from glados.teamdata.storage import TeamDataStore
from glados.tools.base import (
    ToolContext,
    ToolExecutionError,
    ToolExecutor,
    ToolNamespace,
    ToolSpec,
)


class PartsFilter(StrEnum):
    ALL = "all"
    LOW_STOCK = "low_stock"


class PartsListInput(BaseModel):
    filter: PartsFilter = Field(
        default=PartsFilter.ALL, description="Show all parts or only low-stock parts"
    )


class PartsSearchInput(BaseModel):
    query: str = Field(min_length=1, description="Name, part number or vendor to search for")


class PartsGetInput(BaseModel):
    part_id: str = Field(min_length=1, description="ID of the part")


class PartsAdjustInput(BaseModel):
    part_id: str = Field(min_length=1, description="ID of the part")
    adjustment: int = Field(
        description="Amount to add (positive) or remove (negative) from stock"
    )
    reason: str | None = Field(default=None, description="Why the quantity changed")


class PartsExecutor(ToolExecutor):
    namespace = ToolNamespace.PARTS

    def __init__(self, data: TeamDataStore) -> None:
        self._data = data

    @property
    def specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(
                name="parts_list",
                description=(
                    "List parts in the team inventory. Use filter=low_stock for parts "
                    "at or below their reorder point."
                ),
                namespace=self.namespace,
                input_model=PartsListInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="parts_search",
                description="Search inventory parts by name, part number or vendor.",
                namespace=self.namespace,
                input_model=PartsSearchInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="parts_get",
                description="Get details for a single part.",
                namespace=self.namespace,
                input_model=PartsGetInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="parts_adjust_quantity",
                description=(
                    "Adjust a part's stock quantity, e.g. after using or receiving parts. "
                    "Quantity can never go below zero."
                ),
                namespace=self.namespace,
                input_model=PartsAdjustInput,
            ),
        ]

    async def execute(self, name: str, params: BaseModel, context: ToolContext) -> dict[str, Any]:
        match params:
            case PartsListInput(filter=parts_filter):
                parts = await self._data.list_parts(
                    context.team_id, low_stock_only=parts_filter == PartsFilter.LOW_STOCK
                )
                return {
                    "count": len(parts),
                    "parts": [p.to_dict() | {"is_low_stock": p.is_low_stock} for p in parts],
                }
            case PartsSearchInput(query=query):
                parts = await self._data.search_parts(context.team_id, query)
                return {"count": len(parts), "parts": [p.to_dict() for p in parts]}
            case PartsGetInput(part_id=part_id):
                part = await self._data.get_part(context.team_id, part_id)
                if part is None:
                    raise ToolExecutionError("Part not found")
                return {"part": part.to_dict() | {"is_low_stock": part.is_low_stock}}
            case PartsAdjustInput(part_id=part_id, adjustment=adjustment):
                previous, part = await self._data.adjust_part_quantity(
                    context.team_id, part_id, adjustment
                )
                return {
                    "success": True,
                    "part_name": part.name,
                    "previous_quantity": previous,
                    "new_quantity": part.quantity,
                    "is_now_low_stock": part.is_low_stock,
                }
        raise ToolExecutionError(f"Unknown parts tool: {name}")
