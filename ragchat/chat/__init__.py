"""Chat orchestration over the session manager and streaming pipeline."""

from ragchat.chat.service import ChatService

__all__ = ["ChatService"]
