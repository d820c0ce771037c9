"""Messaging platform clients."""

from app.adapters.base import BaseMessagingClient
from app.adapters.chatwoot import ChatwootClient

__all__ = ["BaseMessagingClient", "ChatwootClient"]
