"""
Adapters layer - Stores and notification delivery.
"""

from .json_store import JsonFileStore
from .memory_store import InMemoryStore
from .notifiers import ConsoleNotifier, WebhookNotifier

__all__ = ["InMemoryStore", "JsonFileStore", "ConsoleNotifier", "WebhookNotifier"]
