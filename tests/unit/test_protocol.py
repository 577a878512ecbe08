"""Tests for wire models and plain-data validation."""

from __future__ import annotations

import math

import pytest
from pydantic import ValidationError as PydanticValidationError

from webemitter.events.codec import Token
from webemitter.protocol import (
    EmitRequest,
    EmitResponse,
    Envelope,
    EventNamesResponse,
    NetworkState,
    NodeState,
    StatusResponse,
    ensure_plain_data,
)
from webemitter.utils.exceptions import SerializationError

pytestmark = [pytest.mark.unit]


class TestEnsurePlainData:
    """Plain-data validation."""

    @pytest.mark.parametrize(
        "value",
        [
            None,
            True,
            0,
            -3.5,
            "text",
            [],
            [1, "a", None],
            (1, 2),
            {"nested": {"list": [1, {"deep": False}]}},
        ],
    )
    def test_accepts_plain_data(self, value):
        """JSON-representable values pass."""
        ensure_plain_data(value)

    @pytest.mark.parametrize(
        "value",
        [
            lambda: None,
            object(),
            b"bytes",
            {1, 2},
            {1: "int key"},
            math.nan,
            math.inf,
            [1, [2, print]],
        ],
    )
    def test_rejects_other_values(self, value):
        """Functions, objects and non-JSON containers are rejected."""
        with pytest.raises(SerializationError):
            ensure_plain_data(value)

    def test_rejects_cycles(self):
        """Self-referencing containers are rejected."""
        looped: list = [1]
        looped.append(looped)
        with pytest.raises(SerializationError, match="cycle"):
            ensure_plain_data(looped)

    def test_shared_subobject_is_not_a_cycle(self):
        """The same object twice in one payload is fine."""
        shared = {"a": 1}
        ensure_plain_data([shared, shared])

    def test_error_names_path(self):
        """The error points at the offending element."""
        with pytest.raises(SerializationError) as exc_info:
            ensure_plain_data({"ok": 1, "bad": [0, object()]})
        assert "['bad'][1]" in exc_info.value.message


class TestEnvelope:
    """Envelope construction."""

    def test_build_plain_name(self):
        """Plain names are not symbols."""
        envelope = Envelope.build("greeting", ["hi", 1])
        assert envelope.name == "greeting"
        assert envelope.is_symbol is False
        assert envelope.args == ("hi", 1)

    def test_build_token(self):
        """Tokens are sent as their display text."""
        envelope = Envelope.build(Token("private"), [])
        assert envelope.name == "private"
        assert envelope.is_symbol is True

    def test_build_rejects_function_argument(self):
        """Validation happens at construction."""
        with pytest.raises(SerializationError):
            Envelope.build("evt", [print])

    def test_to_request(self):
        """The emit request carries name, symbol flag and args."""
        request = Envelope.build(Token("t"), [{"k": [1]}]).to_request()
        assert request.model_dump() == {"event": "t", "symbol": True, "args": [{"k": [1]}]}


class TestBodies:
    """Request/response bodies."""

    def test_emit_request_requires_string_event(self):
        """event must be a string."""
        with pytest.raises(PydanticValidationError):
            EmitRequest.model_validate({"event": 5, "args": []})

    def test_emit_request_defaults(self):
        """symbol and args are optional."""
        request = EmitRequest.model_validate({"event": "e"})
        assert request.symbol is False
        assert request.args == []

    def test_emit_response_alias(self):
        """hadListeners is the wire name."""
        response = EmitResponse.model_validate({"success": True, "hadListeners": True})
        assert response.had_listeners is True
        assert EmitResponse(had_listeners=False).model_dump(by_alias=True) == {
            "success": True,
            "hadListeners": False,
        }

    def test_status_response_roundtrip_shape(self):
        """Status bodies use camelCase names."""
        body = {
            "success": True,
            "nodeStatus": "RUNNING",
            "networkStatus": "PARTIAL",
            "servers": ["http://a:1"],
            "eventNames": [{"event": "e", "symbol": False}],
        }
        response = StatusResponse.model_validate(body)
        assert response.node_status is NodeState.RUNNING
        assert response.network_status is NetworkState.PARTIAL
        assert response.model_dump(by_alias=True, mode="json") == body

    def test_status_response_rejects_unknown_state(self):
        """Unknown node states are malformed."""
        with pytest.raises(PydanticValidationError):
            StatusResponse.model_validate({"nodeStatus": "ASLEEP", "networkStatus": "DOWN"})

    def test_event_names_symbols_optional(self):
        """Bodies without symbols are accepted."""
        response = EventNamesResponse.model_validate({"success": True, "events": ["a"]})
        assert response.symbols is None
