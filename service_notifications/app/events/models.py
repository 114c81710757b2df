"""
Notification event models for the Notification service.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from shared.errors import DecodeError, ValidationError


class EventKind(str, Enum):
    """Well-known notification kinds."""
    PROMOTIONAL = "promotional"
    ORDER = "order"
    INVENTORY = "inventory"


class NotificationEvent(BaseModel):
    """Immutable notification event.

    ``entity_id`` is both the partition key and the rate-limit subject.
    ``kind`` is a free-form tag; :class:`EventKind` lists the usual ones.
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str
    kind: str = EventKind.PROMOTIONAL.value
    payload: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("entity_id")
    @classmethod
    def _entity_id_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("entity_id must not be empty")
        return value


class NotificationRequest(BaseModel):
    """Inbound single-event submission."""
    entity_id: str
    kind: str = EventKind.PROMOTIONAL.value
    payload: str = ""


def create_event(
    entity_id: str,
    kind: str = EventKind.PROMOTIONAL.value,
    payload: str = "",
    created_at: Optional[datetime] = None
) -> NotificationEvent:
    """Build an event at the producing edge, rejecting empty entity ids."""
    try:
        if created_at is None:
            return NotificationEvent(entity_id=entity_id, kind=kind, payload=payload)
        return NotificationEvent(entity_id=entity_id, kind=kind, payload=payload, created_at=created_at)
    except PydanticValidationError as e:
        errors = [{"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]} for err in e.errors()]
        raise ValidationError("Invalid notification event", {"errors": errors})


def encode_event(event: NotificationEvent) -> bytes:
    """Serialize an event for the wire."""
    return event.model_dump_json().encode("utf-8")


def decode_event(data: Optional[Union[bytes, str]]) -> NotificationEvent:
    """Deserialize an event, raising DecodeError on any malformed payload."""
    if data is None:
        raise DecodeError("Empty event payload")
    try:
        return NotificationEvent.model_validate_json(data)
    except PydanticValidationError as e:
        raise DecodeError("Malformed event payload", {"errors": len(e.errors())})
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError("Malformed event payload", {"error": str(e)})
