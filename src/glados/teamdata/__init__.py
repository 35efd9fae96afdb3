"""Team records consumed by the assistant's tools and system prompt."""

from glados.teamdata.models import DomainError, TeamContext
from glados.teamdata.storage import TeamDataStore

__all__ = ["DomainError", "TeamContext", "TeamDataStore"]
