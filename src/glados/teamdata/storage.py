"""PostgreSQL-backed access to team records (teams, parts, orders, BOM, members, events).

The web application owns these tables; the assistant reads them and makes
the one write the tools expose (inventory quantity adjustment). The schema
below is applied with ``CREATE TABLE IF NOT EXISTS`` so a fresh database is
usable for development and integration tests.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import asyncpg  # type: ignore[import-not-found,import-untyped]

from glados.logging import get_logger
from glados.teamdata.models import (
    BomItem,
    DomainError,
    Event,
    EventAttendee,
    Member,
    Order,
    OrderItem,
    Part,
    Season,
    Team,
    TeamContext,
)

log = get_logger("glados.teamdata.storage")

OPEN_ORDER_STATUSES = ("pending", "approved")

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS teams (
    id                TEXT         PRIMARY KEY,
    name              TEXT         NOT NULL,
    number            TEXT         NOT NULL,
    program           TEXT         NOT NULL DEFAULT 'ftc',
    discord_guild_id  TEXT         UNIQUE,
    created_at        TIMESTAMPTZ  NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS seasons (
    id          TEXT         PRIMARY KEY DEFAULT gen_random_uuid()::text,
    team_id     TEXT         NOT NULL REFERENCES teams (id),
    name        TEXT         NOT NULL,
    year        TEXT         NOT NULL,
    is_active   BOOLEAN      NOT NULL DEFAULT false
);

CREATE TABLE IF NOT EXISTS parts (
    id               TEXT         PRIMARY KEY DEFAULT gen_random_uuid()::text,
    team_id          TEXT         NOT NULL REFERENCES teams (id),
    name             TEXT         NOT NULL,
    part_number      TEXT,
    vendor           TEXT,
    location         TEXT,
    quantity         INT          NOT NULL DEFAULT 0 CHECK (quantity >= 0),
    reorder_point    INT          NOT NULL DEFAULT 0,
    unit_cost_cents  INT,
    updated_at       TIMESTAMPTZ  NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS orders (
    id           TEXT         PRIMARY KEY DEFAULT gen_random_uuid()::text,
    team_id      TEXT         NOT NULL REFERENCES teams (id),
    vendor       TEXT,
    status       VARCHAR(20)  NOT NULL DEFAULT 'draft'
                 CHECK (status IN ('draft', 'pending', 'approved', 'rejected',
                                   'ordered', 'received')),
    total_cents  INT          NOT NULL DEFAULT 0,
    notes        TEXT,
    created_at   TIMESTAMPTZ  NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS order_items (
    id               SERIAL       PRIMARY KEY,
    order_id         TEXT         NOT NULL REFERENCES orders (id),
    name             TEXT         NOT NULL,
    quantity         INT          NOT NULL DEFAULT 1,
    unit_cost_cents  INT          NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS bom_items (
    id               TEXT         PRIMARY KEY DEFAULT gen_random_uuid()::text,
    team_id          TEXT         NOT NULL REFERENCES teams (id),
    part_id          TEXT         NOT NULL REFERENCES parts (id),
    subsystem        TEXT         NOT NULL,
    quantity_needed  INT          NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS team_members (
    id                    TEXT         PRIMARY KEY DEFAULT gen_random_uuid()::text,
    team_id               TEXT         NOT NULL REFERENCES teams (id),
    name                  TEXT         NOT NULL,
    role                  VARCHAR(20)  NOT NULL
                          CHECK (role IN ('lead_mentor', 'mentor', 'student', 'admin')),
    discord_user_id       TEXT,
    birthdate             DATE,
    dietary_restrictions  TEXT[]       NOT NULL DEFAULT '{}',
    is_ypp_contact        BOOLEAN      NOT NULL DEFAULT false
);

CREATE TABLE IF NOT EXISTS events (
    id           TEXT         PRIMARY KEY DEFAULT gen_random_uuid()::text,
    team_id      TEXT         NOT NULL REFERENCES teams (id),
    title        TEXT         NOT NULL,
    event_type   TEXT         NOT NULL DEFAULT 'meeting',
    starts_at    TIMESTAMPTZ  NOT NULL,
    ends_at      TIMESTAMPTZ,
    location     TEXT,
    description  TEXT
);

CREATE TABLE IF NOT EXISTS event_rsvps (
    event_id   TEXT         NOT NULL REFERENCES events (id),
    member_id  TEXT         NOT NULL REFERENCES team_members (id),
    status     VARCHAR(12)  NOT NULL CHECK (status IN ('going', 'maybe', 'not_going')),
    PRIMARY KEY (event_id, member_id)
);

CREATE INDEX IF NOT EXISTS idx_parts_team_id ON parts (team_id);
CREATE INDEX IF NOT EXISTS idx_orders_team_status ON orders (team_id, status);
CREATE INDEX IF NOT EXISTS idx_team_members_team_id ON team_members (team_id);
CREATE INDEX IF NOT EXISTS idx_team_members_discord ON team_members (discord_user_id);
CREATE INDEX IF NOT EXISTS idx_events_team_starts ON events (team_id, starts_at);
"""

_PART_COLUMNS = (
    "id, name, quantity, reorder_point, part_number, vendor, location, unit_cost_cents"
)
_MEMBER_COLUMNS = "id, name, role, discord_user_id, birthdate, dietary_restrictions"
_EVENT_COLUMNS = "id, title, event_type, starts_at, ends_at, location, description"


def _row_to_team(row: asyncpg.Record) -> Team:
    return Team(
        id=row["id"],
        name=row["name"],
        number=row["number"],
        program=row["program"],
        discord_guild_id=row["discord_guild_id"],
    )


def _row_to_part(row: asyncpg.Record) -> Part:
    return Part(**dict(row))


def _row_to_member(row: asyncpg.Record) -> Member:
    data = dict(row)
    data["dietary_restrictions"] = list(data.get("dietary_restrictions") or [])
    return Member(**data)


def _row_to_event(row: asyncpg.Record) -> Event:
    return Event(**dict(row))


class TeamDataStore:
    """Read/write access to the team-management tables."""

    def __init__(self, pool: asyncpg.Pool) -> None:  # type: ignore[type-arg]
        self._pool = pool

    async def ensure_schema(self) -> None:
        """Create tables and indexes if absent."""
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(_SCHEMA_SQL)
            log.info("teamdata_schema_ensured")
        except asyncpg.UniqueViolationError:
            # Another process created the schema concurrently.
            log.info("teamdata_schema_ensured", note="concurrent creation resolved")

    # ------------------------------------------------------------------
    # Teams and context
    # ------------------------------------------------------------------

    async def get_team(self, team_id: str) -> Team | None:
        row = await self._fetchrow(
            "SELECT id, name, number, program, discord_guild_id FROM teams WHERE id = $1",
            team_id,
        )
        return _row_to_team(row) if row else None

    async def get_team_by_guild(self, guild_id: str) -> Team | None:
        row = await self._fetchrow(
            """
            SELECT id, name, number, program, discord_guild_id
            FROM teams WHERE discord_guild_id = $1
            """,
            guild_id,
        )
        return _row_to_team(row) if row else None

    async def find_team_for_discord_user(self, discord_user_id: str) -> Team | None:
        """Resolve a DM author to their team (first membership wins)."""
        row = await self._fetchrow(
            """
            SELECT t.id, t.name, t.number, t.program, t.discord_guild_id
            FROM team_members m JOIN teams t ON t.id = m.team_id
            WHERE m.discord_user_id = $1
            ORDER BY t.created_at ASC
            LIMIT 1
            """,
            discord_user_id,
        )
        return _row_to_team(row) if row else None

    async def get_member_by_discord_id(self, team_id: str, discord_user_id: str) -> Member | None:
        row = await self._fetchrow(
            f"""
            SELECT {_MEMBER_COLUMNS} FROM team_members
            WHERE team_id = $1 AND discord_user_id = $2
            """,
            team_id,
            discord_user_id,
        )
        return _row_to_member(row) if row else None

    async def load_team_context(
        self, team_id: str, discord_user_id: str | None = None
    ) -> TeamContext | None:
        """Load the team summary used to build the system prompt.

        Returns ``None`` when the team does not exist.
        """
        team = await self.get_team(team_id)
        if team is None:
            return None

        async with self._pool.acquire() as conn:
            season_row = await conn.fetchrow(
                """
                SELECT name, year FROM seasons
                WHERE team_id = $1 AND is_active
                ORDER BY year DESC LIMIT 1
                """,
                team_id,
            )
            total_parts = await conn.fetchval(
                "SELECT count(*)::int FROM parts WHERE team_id = $1", team_id
            )
            low_rows = await conn.fetch(
                f"""
                SELECT {_PART_COLUMNS} FROM parts
                WHERE team_id = $1 AND quantity <= reorder_point
                ORDER BY quantity ASC, name ASC
                """,
                team_id,
            )
            order_row = await conn.fetchrow(
                """
                SELECT count(*)::int AS cnt, coalesce(sum(total_cents), 0)::bigint AS total
                FROM orders WHERE team_id = $1 AND status = ANY($2::text[])
                """,
                team_id,
                list(OPEN_ORDER_STATUSES),
            )

        user_role = None
        if discord_user_id:
            member = await self.get_member_by_discord_id(team_id, discord_user_id)
            user_role = member.role if member else None

        return TeamContext(
            team=team,
            season=Season(name=season_row["name"], year=season_row["year"])
            if season_row
            else None,
            total_parts=total_parts or 0,
            low_stock_parts=[_row_to_part(r) for r in low_rows],
            open_order_count=order_row["cnt"] if order_row else 0,
            open_order_total_cents=int(order_row["total"]) if order_row else 0,
            user_role=user_role,
        )

    # ------------------------------------------------------------------
    # Parts
    # ------------------------------------------------------------------

    async def list_parts(self, team_id: str, *, low_stock_only: bool = False) -> list[Part]:
        condition = "AND quantity <= reorder_point" if low_stock_only else ""
        rows = await self._fetch(
            f"SELECT {_PART_COLUMNS} FROM parts WHERE team_id = $1 {condition} ORDER BY name",
            team_id,
        )
        return [_row_to_part(r) for r in rows]

    async def search_parts(self, team_id: str, query: str) -> list[Part]:
        rows = await self._fetch(
            f"""
            SELECT {_PART_COLUMNS} FROM parts
            WHERE team_id = $1
              AND (name ILIKE $2 OR part_number ILIKE $2 OR vendor ILIKE $2)
            ORDER BY name
            LIMIT 25
            """,
            team_id,
            f"%{query}%",
        )
        return [_row_to_part(r) for r in rows]

    async def get_part(self, team_id: str, part_id: str) -> Part | None:
        row = await self._fetchrow(
            f"SELECT {_PART_COLUMNS} FROM parts WHERE team_id = $1 AND id = $2",
            team_id,
            part_id,
        )
        return _row_to_part(row) if row else None

    async def adjust_part_quantity(
        self, team_id: str, part_id: str, adjustment: int
    ) -> tuple[int, Part]:
        """Atomically apply *adjustment* to a part's quantity.

        Returns:
            ``(previous_quantity, updated_part)``.

        Raises:
            DomainError: If the part does not exist or the result would be
                negative.
        """
        async with self._pool.acquire() as conn, conn.transaction():
            current = await conn.fetchrow(
                "SELECT quantity FROM parts WHERE team_id = $1 AND id = $2 FOR UPDATE",
                team_id,
                part_id,
            )
            if current is None:
                raise DomainError("Part not found")
            previous: int = current["quantity"]
            if previous + adjustment < 0:
                raise DomainError(
                    f"Cannot reduce quantity below zero (current: {previous}, "
                    f"adjustment: {adjustment})"
                )
            row = await conn.fetchrow(
                f"""
                UPDATE parts SET quantity = quantity + $3, updated_at = now()
                WHERE team_id = $1 AND id = $2
                RETURNING {_PART_COLUMNS}
                """,
                team_id,
                part_id,
                adjustment,
            )
        log.info(
            "part_quantity_adjusted",
            team_id=team_id,
            part_id=part_id,
            previous=previous,
            adjustment=adjustment,
        )
        return previous, _row_to_part(row)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def list_orders(self, team_id: str, status: str | None = None) -> list[Order]:
        rows = await self._fetch(
            """
            SELECT id, status, total_cents, vendor, notes, created_at FROM orders
            WHERE team_id = $1 AND ($2::text IS NULL OR status = $2)
            ORDER BY created_at DESC
            """,
            team_id,
            status,
        )
        return [Order(**dict(r)) for r in rows]

    async def get_order(self, team_id: str, order_id: str) -> Order | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id, status, total_cents, vendor, notes, created_at FROM orders
                WHERE team_id = $1 AND id = $2
                """,
                team_id,
                order_id,
            )
            if row is None:
                return None
            item_rows = await conn.fetch(
                "SELECT name, quantity, unit_cost_cents FROM order_items WHERE order_id = $1",
                order_id,
            )
        order = Order(**dict(row))
        order.items = [OrderItem(**dict(r)) for r in item_rows]
        return order

    # ------------------------------------------------------------------
    # Bill of materials
    # ------------------------------------------------------------------

    async def list_bom(self, team_id: str, subsystem: str | None = None) -> list[BomItem]:
        rows = await self._fetch(
            """
            SELECT b.id, b.part_id, p.name AS part_name, b.subsystem,
                   b.quantity_needed, p.quantity AS quantity_on_hand
            FROM bom_items b JOIN parts p ON p.id = b.part_id
            WHERE b.team_id = $1 AND ($2::text IS NULL OR b.subsystem = $2)
            ORDER BY b.subsystem, p.name
            """,
            team_id,
            subsystem,
        )
        return [BomItem(**dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def list_members(self, team_id: str, role: str | None = None) -> list[Member]:
        rows = await self._fetch(
            f"""
            SELECT {_MEMBER_COLUMNS} FROM team_members
            WHERE team_id = $1 AND ($2::text IS NULL OR role = $2)
            ORDER BY name
            """,
            team_id,
            role,
        )
        return [_row_to_member(r) for r in rows]

    async def get_member(self, team_id: str, member_id: str) -> Member | None:
        row = await self._fetchrow(
            f"SELECT {_MEMBER_COLUMNS} FROM team_members WHERE team_id = $1 AND id = $2",
            team_id,
            member_id,
        )
        return _row_to_member(row) if row else None

    async def find_members_by_name(self, team_id: str, name: str) -> list[Member]:
        rows = await self._fetch(
            f"""
            SELECT {_MEMBER_COLUMNS} FROM team_members
            WHERE team_id = $1 AND name ILIKE $2
            ORDER BY name
            """,
            team_id,
            f"%{name}%",
        )
        return [_row_to_member(r) for r in rows]

    async def list_members_by_ids(self, team_id: str, member_ids: list[str]) -> list[Member]:
        rows = await self._fetch(
            f"""
            SELECT {_MEMBER_COLUMNS} FROM team_members
            WHERE team_id = $1 AND id = ANY($2::text[])
            ORDER BY name
            """,
            team_id,
            member_ids,
        )
        return [_row_to_member(r) for r in rows]

    async def list_ypp_contacts(self, team_id: str) -> list[Member]:
        """Members designated to receive safety escalations for the team."""
        rows = await self._fetch(
            f"""
            SELECT {_MEMBER_COLUMNS} FROM team_members
            WHERE team_id = $1 AND is_ypp_contact
            ORDER BY name
            """,
            team_id,
        )
        return [_row_to_member(r) for r in rows]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def list_upcoming_events(
        self,
        team_id: str,
        *,
        until: datetime,
        event_type: str | None = None,
        limit: int = 10,
    ) -> list[Event]:
        rows = await self._fetch(
            f"""
            SELECT {_EVENT_COLUMNS} FROM events
            WHERE team_id = $1 AND starts_at >= now() AND starts_at <= $2
              AND ($3::text IS NULL OR event_type = $3)
            ORDER BY starts_at ASC
            LIMIT $4
            """,
            team_id,
            until,
            event_type,
            limit,
        )
        return [_row_to_event(r) for r in rows]

    async def get_event(self, team_id: str, event_id: str) -> Event | None:
        row = await self._fetchrow(
            f"SELECT {_EVENT_COLUMNS} FROM events WHERE team_id = $1 AND id = $2",
            team_id,
            event_id,
        )
        return _row_to_event(row) if row else None

    async def search_events(self, team_id: str, query: str, limit: int = 10) -> list[Event]:
        rows = await self._fetch(
            f"""
            SELECT {_EVENT_COLUMNS} FROM events
            WHERE team_id = $1 AND (title ILIKE $2 OR description ILIKE $2)
            ORDER BY starts_at DESC
            LIMIT $3
            """,
            team_id,
            f"%{query}%",
            limit,
        )
        return [_row_to_event(r) for r in rows]

    async def list_event_attendees(
        self, team_id: str, event_id: str, status: str | None = None
    ) -> list[EventAttendee]:
        rows = await self._fetch(
            """
            SELECT r.member_id, m.name, r.status
            FROM event_rsvps r
            JOIN team_members m ON m.id = r.member_id
            JOIN events e ON e.id = r.event_id
            WHERE e.team_id = $1 AND r.event_id = $2
              AND ($3::text IS NULL OR r.status = $3)
            ORDER BY m.name
            """,
            team_id,
            event_id,
            status,
        )
        return [EventAttendee(**dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self._pool.acquire() as conn:
            return await conn.fetch(query, *args)  # type: ignore[no-any-return]

    async def _fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self._pool.acquire() as conn:
            return await conn.fetchrow(query, *args)
