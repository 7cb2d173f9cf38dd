"""Wire message models for the WebSocket channel."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter


class PatchMessage(BaseModel):
    """Client → server: apply a sparse diff to the project state."""

    model_config = {"extra": "forbid"}

    type: Literal["patch"]
    data: dict[str, Any]


class ReplaceMessage(BaseModel):
    """Client → server: reconcile the project state against a full snapshot."""

    model_config = {"extra": "forbid"}

    type: Literal["replace"]
    data: dict[str, Any]


class PingMessage(BaseModel):
    model_config = {"extra": "forbid"}

    type: Literal["ping"]


ClientMessage = Annotated[PatchMessage | ReplaceMessage | PingMessage, Field(discriminator="type")]

# Validates any decoded inbound message; the "type" tag picks the model
client_message_adapter = TypeAdapter(ClientMessage)
