"""Records read from the team data store.

These are thin views over the team-management tables the assistant reads
and, for inventory adjustments, writes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any


class DomainError(Exception):
    """A data-layer refusal that should be reported back to the model."""


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


class _Record:
    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serialisable dictionary."""
        return {k: _jsonable(v) for k, v in asdict(self).items()}  # type: ignore[call-overload]


@dataclass
class Team(_Record):
    id: str
    name: str
    number: str
    program: str = "ftc"
    discord_guild_id: str | None = None


@dataclass
class Season(_Record):
    name: str
    year: str


@dataclass
class Part(_Record):
    id: str
    name: str
    quantity: int
    reorder_point: int = 0
    part_number: str | None = None
    vendor: str | None = None
    location: str | None = None
    unit_cost_cents: int | None = None

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.reorder_point


@dataclass
class OrderItem(_Record):
    name: str
    quantity: int
    unit_cost_cents: int = 0


@dataclass
class Order(_Record):
    id: str
    status: str
    total_cents: int
    vendor: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    items: list[OrderItem] = field(default_factory=list)


@dataclass
class BomItem(_Record):
    id: str
    part_id: str
    part_name: str
    subsystem: str
    quantity_needed: int
    quantity_on_hand: int

    @property
    def shortfall(self) -> int:
        return max(0, self.quantity_needed - self.quantity_on_hand)


@dataclass
class Member(_Record):
    id: str
    name: str
    role: str
    discord_user_id: str | None = None
    birthdate: date | None = None
    dietary_restrictions: list[str] = field(default_factory=list)


@dataclass
class Event(_Record):
    id: str
    title: str
    event_type: str
    starts_at: datetime
    ends_at: datetime | None = None
    location: str | None = None
    description: str | None = None


@dataclass
class EventAttendee(_Record):
    member_id: str
    name: str
    status: str


@dataclass
class TeamContext:
    """Everything the system prompt needs about the requesting team."""

    team: Team
    season: Season | None = None
    total_parts: int = 0
    low_stock_parts: list[Part] = field(default_factory=list)
    open_order_total_cents: int = 0
    open_order_count: int = 0
    user_role: str | None = None
