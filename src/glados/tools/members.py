"""Team membership tools.

Birthdates are never returned to the model; only the fields needed for
logistics are exposed.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from glados.teamdata.models import Member
from glados.teamdata.storage import TeamDataStore
from glados.tools.base import (
    ToolContext,
    ToolExecutionError,
    ToolExecutor,
    ToolNamespace,
    ToolSpec,
)


class MemberRoleFilter(StrEnum):
    ALL = "all"
    LEAD_MENTOR = "lead_mentor"
    MENTOR = "mentor"
    STUDENT = "student"


class MembersListInput(BaseModel):
    role: MemberRoleFilter = Field(default=MemberRoleFilter.ALL, description="Filter by role")


class MembersGetInput(BaseModel):
    member_id: str | None = Field(default=None, description="ID of the member")
    name: str | None = Field(default=None, description="Full or partial member name")


class MembersDietaryInput(BaseModel):
    member_ids: list[str] | None = Field(
        default=None, description="Limit to these members (defaults to the whole team)"
    )


def _public(member: Member) -> dict[str, Any]:
    return {
        "id": member.id,
        "name": member.name,
        "role": member.role,
        "dietary_restrictions": member.dietary_restrictions,
    }


class MembersExecutor(ToolExecutor):
    namespace = ToolNamespace.MEMBERS

    def __init__(self, data: TeamDataStore) -> None:
        self._data = data

    @property
    def specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(
                name="members_list",
                description="List team members, optionally filtered by role.",
                namespace=self.namespace,
                input_model=MembersListInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="members_get",
                description="Look up one member by ID or by name.",
                namespace=self.namespace,
                input_model=MembersGetInput,
                concurrent_safe=True,
            ),
            ToolSpec(
                name="members_dietary_summary",
                description="Summarize dietary restrictions for meal planning.",
                namespace=self.namespace,
                input_model=MembersDietaryInput,
                concurrent_safe=True,
            ),
        ]

    async def execute(self, name: str, params: BaseModel, context: ToolContext) -> dict[str, Any]:
        match params:
            case MembersListInput(role=role):
                members = await self._data.list_members(
                    context.team_id, None if role == MemberRoleFilter.ALL else role.value
                )
                return {"count": len(members), "members": [_public(m) for m in members]}
            case MembersGetInput(member_id=member_id, name=member_name):
                if member_id:
                    member = await self._data.get_member(context.team_id, member_id)
                    if member is None:
                        raise ToolExecutionError("Member not found")
                    return {"member": _public(member)}
                if member_name:
                    matches = await self._data.find_members_by_name(context.team_id, member_name)
                    if not matches:
                        raise ToolExecutionError(f'No member found matching "{member_name}"')
                    if len(matches) == 1:
                        return {"member": _public(matches[0])}
                    return {"matches": [_public(m) for m in matches]}
                raise ToolExecutionError("Please provide either memberId or name")
            case MembersDietaryInput(member_ids=member_ids):
                if member_ids:
                    members = await self._data.list_members_by_ids(context.team_id, member_ids)
                else:
                    members = await self._data.list_members(context.team_id)
                counts: dict[str, int] = {}
                for member in members:
                    for restriction in member.dietary_restrictions:
                        counts[restriction] = counts.get(restriction, 0) + 1
                return {
                    "total_members": len(members),
                    "no_restrictions": sum(1 for m in members if not m.dietary_restrictions),
                    "restrictions": dict(sorted(counts.items(), key=lambda kv: -kv[1])),
                }
        raise ToolExecutionError(f"Unknown members tool: {name}")
