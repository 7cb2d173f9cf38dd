"""
Pydantic models for the push server.

All wire shapes defined here. No imports from routes or services.
"""

from pushserver.models.messages import (
    ClientMessage,
    PatchMessage,
    PingMessage,
    ReplaceMessage,
    client_message_adapter,
)

__all__ = [
    "ClientMessage",
    "PatchMessage",
    "PingMessage",
    "ReplaceMessage",
    "client_message_adapter",
]
