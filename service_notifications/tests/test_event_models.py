"""
Unit tests for the notification event model and codec.
"""

import pytest
from datetime import datetime, timezone

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from pydantic import ValidationError as PydanticValidationError

from service_notifications.app.events.models import (
    EventKind,
    NotificationEvent,
    create_event,
    decode_event,
    encode_event,
)
from shared.errors import DecodeError, ValidationError
from shared.test_helpers import TestDataFactory


class TestNotificationEvent:
    """Test cases for NotificationEvent."""

    def test_defaults(self):
        event = NotificationEvent(entity_id="u1")

        assert event.kind == EventKind.PROMOTIONAL.value
        assert event.payload == ""
        assert event.created_at.tzinfo is not None

    def test_is_immutable(self):
        event = NotificationEvent(entity_id="u1")

        with pytest.raises(PydanticValidationError):
            event.entity_id = "u2"

    @pytest.mark.parametrize("entity_id", ["", "   "])
    def test_rejects_blank_entity_id(self, entity_id):
        with pytest.raises(PydanticValidationError):
            NotificationEvent(entity_id=entity_id)

    def test_create_event_raises_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            create_event("")

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.details["errors"][0]["field"] == "entity_id"

    def test_create_event_keeps_timestamp(self):
        created_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        event = create_event("u1", "order", "Your order has shipped", created_at)

        assert event.created_at == created_at
        assert event.kind == "order"


class TestEventCodec:
    """Test cases for encode_event / decode_event."""

    def test_encode_then_decode(self):
        event = NotificationEvent(**TestDataFactory.event_fields("u1", 3, "inventory"))

        assert decode_event(encode_event(event)) == event

    def test_decode_accepts_str(self):
        event = NotificationEvent(**TestDataFactory.event_fields("u1"))

        assert decode_event(encode_event(event).decode("utf-8")) == event

    @pytest.mark.parametrize("payload", [
        None,
        b"",
        b"not json",
        b'{"kind": "order"}',
        b'{"entity_id": ""}',
        b"\xff\xfe\x00",
    ])
    def test_malformed_payloads_raise_decode_error(self, payload):
        with pytest.raises(DecodeError) as exc_info:
            decode_event(payload)

        assert exc_info.value.code == "DECODE_ERROR"
