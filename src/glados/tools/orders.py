"""Purchase order tools (read-only)."""

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


class OrderStatus(StrEnum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ORDERED = "ordered"
    RECEIVED = "received"


class OrdersListInput(BaseModel):
    status: OrderStatus | None = Field(default=None, description="Only orders in this status")


class OrdersGetInput(BaseModel):
    order_id: str = Field(min_length=1, description="ID of the order")


class OrdersSummaryInput(BaseModel):
    pass


def format_dollars(cents: int) -> str:
    return f"${cents / 100:.2f}"


class OrdersExecutor(ToolExecutor):
    namespace = ToolNamespace.ORDERS

    def __init__(self, data: TeamDataStore) -> None:
        self._data = data

    @property
    def specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(
                name="orders_list",
                description="List the team's purchase orders, optionally filtered by status.",
                namespace=self.namespace,
                input_model=OrdersListInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="orders_get",
                description="Get a single order including its line items.",
                namespace=self.namespace,
                input_model=OrdersGetInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="orders_summary",
                description=(
                    "Summarize orders: counts by status and the value of pending and "
                    "approved orders."
                ),
                namespace=self.namespace,
                input_model=OrdersSummaryInput,
                concurrent_safe=True,
            ),
        ]

    async def execute(self, name: str, params: BaseModel, context: ToolContext) -> dict[str, Any]:
        match params:
            case OrdersListInput(status=status):
                orders = await self._data.list_orders(
                    context.team_id, status.value if status else None
                )
                return {
                    "count": len(orders),
                    "orders": [
                        o.to_dict() | {"total": format_dollars(o.total_cents)} for o in orders
                    ],
                }
            case OrdersGetInput(order_id=order_id):
                order = await self._data.get_order(context.team_id, order_id)
                if order is None:
                    raise ToolExecutionError("Order not found")
                return {"order": order.to_dict() | {"total": format_dollars(order.total_cents)}}
            case OrdersSummaryInput():
                orders = await self._data.list_orders(context.team_id)
                by_status: dict[str, int] = {}
                value_cents: dict[str, int] = {}
                for order in orders:
                    by_status[order.status] = by_status.get(order.status, 0) + 1
                    value_cents[order.status] = (
                        value_cents.get(order.status, 0) + order.total_cents
                    )
                return {
                    "total_orders": len(orders),
                    "by_status": by_status,
                    "pending_value": format_dollars(value_cents.get(OrderStatus.PENDING, 0)),
                    "approved_value": format_dollars(value_cents.get(OrderStatus.APPROVED, 0)),
                    "awaiting_action": by_status.get(OrderStatus.PENDING, 0),
                }
        raise ToolExecutionError(f"Unknown orders tool: {name}")
