"""Main entry point for GLaDOS."""

import asyncio
from datetime import timedelta

import asyncpg

from glados.agent.core import Agent
from glados.agent.model import ClaudeModelClient
from glados.api.server import AckServer
from glados.audit.log import AuditLog
from glados.config import get_settings
from glados.conversation.store import ConversationStore
from glados.discord.bot import GladosBot
from glados.discord.rate_limiter import RateLimiter
from glados.discord.transport import DiscordTransport
from glados.logging import get_logger, setup_logging
from glados.moderation.classifier import ClaudeRiskClassifier
from glados.queue.manager import QueueManager
from glados.queue.processors import QueueProcessors
from glados.queue.storage import QueueStorage
from glados.safety.escalation import SafetyEscalation
from glados.safety.notifications import AlertNotifier
from glados.safety.storage import SafetyStore
from glados.teamdata.storage import TeamDataStore
from glados.tools.bom import BomExecutor
from glados.tools.events import EventsExecutor
from glados.tools.members import MembersExecutor
from glados.tools.messaging import MessagingExecutor
from glados.tools.orders import OrdersExecutor
from glados.tools.parts import PartsExecutor
from glados.tools.registry import ToolRegistry
from glados.tools.safety import SafetyExecutor


async def main() -> None:
    """Main application entry point."""
    setup_logging()
    log = get_logger("glados.main")
    settings = get_settings()

    log.info(
        "starting_glados",
        environment=settings.environment,
        agent_model=settings.agent_model,
        classifier_model=settings.classifier_model,
    )

    pool = await asyncpg.create_pool(dsn=settings.postgres_dsn)

    team_data = TeamDataStore(pool)
    safety_store = SafetyStore(pool)
    audit_log = AuditLog(pool)
    conversations = ConversationStore(pool)
    queue_storage = QueueStorage(pool)
    for store in (team_data, safety_store, audit_log, conversations, queue_storage):
        await store.ensure_schema()
    log.info("schemas_ready")

    # Alert DMs always go through the queue; chat messages only when enabled.
    processors = QueueProcessors()
    escalation: SafetyEscalation

    async def purge_conversations() -> None:
        await conversations.purge_older_than(timedelta(days=settings.conversation_retention_days))

    async def escalate_unacknowledged() -> None:
        await escalation.escalate_unacknowledged(
            timedelta(minutes=settings.unacked_alert_threshold_minutes)
        )

    queue_mgr = QueueManager(
        storage=queue_storage,
        processors=processors,
        housekeeping_hooks=[purge_conversations, escalate_unacknowledged],
    )
    escalation = SafetyEscalation(
        safety_store, team_data, queue_mgr, token_ttl_days=settings.ack_token_ttl_days
    )

    tools = ToolRegistry(
        [
            PartsExecutor(team_data),
            OrdersExecutor(team_data),
            BomExecutor(team_data),
            MembersExecutor(team_data),
            EventsExecutor(team_data),
            SafetyExecutor(escalation),
        ]
    )
    agent = Agent(
        ClaudeModelClient(),
        ClaudeRiskClassifier(),
        tools,
        escalation,
        audit_log,
        conversations,
        team_data,
        max_iterations=settings.agent_max_iterations,
        history_limit=settings.conversation_history_limit,
    )

    bot = GladosBot(
        agent=agent,
        team_data=team_data,
        escalation=escalation,
        queue_manager=queue_mgr if settings.queue_enabled else None,
        rate_limiter=RateLimiter(cooldown_seconds=settings.rate_limit_cooldown_seconds),
    )
    transport = DiscordTransport(bot)
    tools.register(MessagingExecutor(transport))
    processors.bind(
        agent=agent,
        transport=transport,
        notifier=AlertNotifier(safety_store, transport, site_url=settings.site_url),
    )
    log.info("pipeline_wired", tool_count=len(tools.build_tool_catalog()))

    ack_server = AckServer(escalation, host=settings.api_host, port=settings.api_port)

    try:
        await queue_mgr.start()
        await ack_server.start()
        await bot.start(settings.discord_token.get_secret_value())
    except KeyboardInterrupt:
        log.info("shutdown_requested")
    finally:
        await bot.close()
        await queue_mgr.stop()
        await ack_server.stop()
        await pool.close()
        log.info("glados_stopped")


def run() -> None:
    """Run the application."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
