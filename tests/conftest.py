"""Pytest fixtures for GLaDOS tests."""

import os
from datetime import date
from unittest.mock import AsyncMock

import pytest


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables before any imports.

    This fixture runs automatically before any tests and ensures that
    Settings can be imported without validation errors.
    """
    os.environ.setdefault("DISCORD_TOKEN", "test-discord-token-placeholder")
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-placeholder")
    os.environ.setdefault("LOG_TO_FILE", "false")

    from glados.config import get_settings

    get_settings.cache_clear()

    yield

    get_settings.cache_clear()


@pytest.fixture
def mock_settings():
    """Settings built explicitly, independent of the environment."""
    from glados.config import Settings

    return Settings(
        discord_token="test-discord-token",
        anthropic_api_key="test-anthropic-key",
        environment="test",
        log_level="DEBUG",
        log_to_file=False,
    )


@pytest.fixture
def team():
    from glados.teamdata.models import Team

    return Team(
        id="team-1",
        name="Circuit Breakers",
        number="12345",
        program="ftc",
        discord_guild_id="999",
    )


@pytest.fixture
def team_context(team):
    from glados.teamdata.models import Part, Season, TeamContext

    return TeamContext(
        team=team,
        season=Season(name="INTO THE DEEP", year="2024-2025"),
        total_parts=42,
        low_stock_parts=[Part(id="p1", name="REV Hex Motor", quantity=1, reorder_point=2)],
        open_order_total_cents=12550,
        open_order_count=2,
        user_role="student",
    )


@pytest.fixture
def mentor():
    from glados.teamdata.models import Member

    return Member(
        id="m-1",
        name="Dana Mentor",
        role="mentor",
        discord_user_id="5551",
        birthdate=date(1980, 4, 2),
    )


@pytest.fixture
def mock_team_data(team, team_context, mentor):
    """AsyncMock TeamDataStore with one team and one reachable YPP contact."""
    data = AsyncMock()
    data.get_team.return_value = team
    data.get_team_by_guild.return_value = team
    data.find_team_for_discord_user.return_value = team
    data.load_team_context.return_value = team_context
    data.list_ypp_contacts.return_value = [mentor]
    return data
