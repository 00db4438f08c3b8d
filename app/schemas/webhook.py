# app/schemas/webhook.py
from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator


class WebhookNotification(BaseModel):
    """
    Minimal envelope every inbound notification must satisfy.
    Everything else in the body is carried through untouched.
    """
    model_config = ConfigDict(extra="allow")

    event_type: str = Field(validation_alias=AliasChoices("eventType", "event_type"))
    event_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("eventId", "event_id"),
    )

    @field_validator("event_type", mode="before")
    @classmethod
    def _require_event_type(cls, v):
        if not isinstance(v, str):
            raise ValueError("eventType must be a string")
        v = v.strip()
        if not v:
            raise ValueError("eventType must not be empty")
        return v

    @field_validator("event_id", mode="before")
    @classmethod
    def _coerce_event_id(cls, v):
        if v in (None, ""):
            return None
        return str(v)[:128]

