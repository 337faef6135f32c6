"""Conversation history persistence."""

from conduit.session.store import ConversationStore

__all__ = ["ConversationStore"]
