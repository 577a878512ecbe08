"""Tests for event identifiers and their wire encoding."""

from __future__ import annotations

import pytest

from webemitter.events.codec import (
    EventCodec,
    PlainName,
    SharedToken,
    Token,
    TokenRegistry,
    decode,
    default_registry,
    encode,
    to_event_key,
)

pytestmark = [pytest.mark.unit]


class TestToken:
    """Token identity."""

    def test_local_tokens_are_unique(self):
        """Two locally minted tokens with the same text differ."""
        assert Token("x") != Token("x")
        assert not Token("x").is_shared

    def test_shared_tokens_are_interned(self):
        """Token.shared returns the registered token."""
        assert Token.shared("webemitter-test-shared") is Token.shared("webemitter-test-shared")
        assert Token.shared("webemitter-test-shared").is_shared
        assert Token.shared("webemitter-test-shared") in default_registry

    def test_description_must_be_string(self):
        """Non-string descriptions are rejected."""
        with pytest.raises(TypeError):
            Token(42)  # type: ignore[arg-type]


class TestTokenRegistry:
    """Registry behavior."""

    def test_get_or_create(self):
        """Creating twice returns the same token."""
        registry = TokenRegistry()
        first = registry.get_or_create("a")
        assert registry.get_or_create("a") is first
        assert registry.get("a") is first
        assert registry.get("b") is None
        assert len(registry) == 1

    def test_membership_is_per_registry(self):
        """A token belongs only to the registry that created it."""
        one, two = TokenRegistry(), TokenRegistry()
        token = one.get_or_create("a")
        assert token in one
        assert token not in two
        assert "a" not in one

    def test_same_identity_across_registries(self):
        """Registry tokens with the same text share an identity."""
        a = TokenRegistry().get_or_create("evt")
        b = TokenRegistry().get_or_create("evt")
        assert a is not b
        assert TokenRegistry.same_identity(a, b)
        assert not TokenRegistry.same_identity(a, TokenRegistry().get_or_create("other"))

    def test_local_token_has_no_shared_identity(self):
        """A locally minted token never matches under the registry rule."""
        shared = TokenRegistry().get_or_create("evt")
        assert not TokenRegistry.same_identity(Token("evt"), shared)


class TestEventKey:
    """Classification at the API boundary."""

    def test_string_becomes_plain_name(self):
        """Strings are plain names."""
        assert to_event_key("greeting") == PlainName("greeting")

    def test_token_becomes_shared_token(self):
        """Tokens are wrapped, keeping identity."""
        token = Token("t")
        key = to_event_key(token)
        assert isinstance(key, SharedToken)
        assert key.identifier is token
        assert key == SharedToken(token)
        assert key != SharedToken(Token("t"))

    def test_existing_key_passes_through(self):
        """Keys are returned unchanged."""
        key = PlainName("x")
        assert to_event_key(key) is key

    @pytest.mark.parametrize("bad", [1, None, b"bytes", ("a",)])
    def test_other_types_rejected(self, bad):
        """Only str and Token identify events."""
        with pytest.raises(TypeError):
            to_event_key(bad)


class TestEventCodec:
    """encode/decode."""

    def test_encode_plain_name(self, codec):
        """Plain names pass through."""
        assert codec.encode("greeting") == ("greeting", False)

    def test_encode_token(self, codec):
        """Tokens project to their display text."""
        assert codec.encode(Token("secret-event")) == ("secret-event", True)

    def test_decode_plain_name(self, codec):
        """Plain names decode to themselves."""
        assert codec.decode("greeting", False) == "greeting"

    def test_decode_symbol_uses_registry(self, codec):
        """Symbol names resolve through the codec's registry."""
        decoded = codec.decode("evt", True)
        assert isinstance(decoded, Token)
        assert decoded in codec.registry
        assert codec.decode("evt", True) is decoded

    def test_local_token_arrives_as_shared(self, codec):
        """A unique token crossing the wire loses its uniqueness."""
        local = Token("evt")
        decoded = codec.decode(*codec.encode(local))
        assert decoded is not local
        assert decoded is codec.registry.get("evt")

    def test_symbol_and_plain_name_are_distinct(self, codec):
        """The same text as name and as token are different keys."""
        assert codec.decode_key("evt", False) != codec.decode_key("evt", True)

    def test_default_codec_uses_default_registry(self):
        """A codec without a registry binds to the process-wide one."""
        assert EventCodec().registry is default_registry

    def test_module_level_helpers_use_shared_registry(self):
        """encode/decode at module level go through the process-wide codec."""
        assert encode("greeting") == ("greeting", False)
        decoded = decode("shared-evt", True)
        assert decoded is Token.shared("shared-evt")
        assert encode(decoded) == ("shared-evt", True)
