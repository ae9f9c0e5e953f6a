"""Geofence events and the wire payload sent to webhooks."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import ensure_utc, generate_id, utc_now


class TransitionType(str, Enum):
    """Geofence transition reported by the producer."""

    ENTER = "enter"
    EXIT = "exit"
    DWELL = "dwell"

    @property
    def event_type(self) -> str:
        """Wire tag for this transition, e.g. ``geofence.enter``."""
        return f"geofence.{self.value}"


class GeofenceEvent(BaseModel):
    """A fired geofence transition.

    Attributes:
        id: Business event ID, echoed to receivers as the payload ``id``.
        owner_id: Owner whose webhooks should be notified.
        transition: enter, exit or dwell.
        timestamp: When the transition happened.
        device_id: Device that crossed the fence.
        geofence_id: Fence that was crossed.
        geofence_name: Display name of the fence.
        latitude: Position at the transition.
        longitude: Position at the transition.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("evt"))
    owner_id: str
    transition: TransitionType
    timestamp: datetime = Field(default_factory=utc_now)
    device_id: str
    geofence_id: str
    geofence_name: str = ""
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)

    @field_validator("timestamp")
    @classmethod
    def _normalize_tz(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def event_type(self) -> str:
        return self.transition.event_type

    def payload_data(self) -> dict[str, Any]:
        """Event-specific fields placed under ``data`` in the payload."""
        return {
            "device_id": self.device_id,
            "geofence_id": self.geofence_id,
            "geofence_name": self.geofence_name,
            "transition": self.transition.value,
            "location": {
                "latitude": self.latitude,
                "longitude": self.longitude,
            },
        }

    def to_payload(self) -> WebhookPayload:
        """Build the wire envelope for this event."""
        return WebhookPayload(
            id=self.id,
            type=self.event_type,
            owner_id=self.owner_id,
            timestamp=self.timestamp,
            data=self.payload_data(),
        )


class WebhookPayload(BaseModel):
    """JSON body POSTed to webhook endpoints.

    The body is serialized exactly once, when the delivery record is
    created, and the stored string is what gets signed and sent on every
    attempt.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("evt"))
    type: str = Field(min_length=1, max_length=100)
    owner_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _normalize_tz(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def to_body(self) -> str:
        """Serialize deterministically: sorted keys, compact separators."""
        return json.dumps(
            self.model_dump(mode="json"),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )


__all__ = ["GeofenceEvent", "TransitionType", "WebhookPayload"]
