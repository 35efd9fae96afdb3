"""Team+channel scoped conversation history."""

from glados.conversation.store import ConversationRole, ConversationStore, ConversationTurn

__all__ = ["ConversationRole", "ConversationStore", "ConversationTurn"]
