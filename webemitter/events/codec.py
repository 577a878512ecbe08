"""Event identifiers and their wire encoding.

An event is identified either by a plain string or by a Token. A Token is
unique to the process that minted it: ``Token("x") != Token("x")``. Tokens
obtained through ``Token.shared`` come from a process-wide TokenRegistry keyed
by display text, so ``Token.shared("x") is Token.shared("x")``.

On the wire a token travels as its display text plus ``symbol: true``. The
receiving side resolves that text through its own registry, which means a
locally minted unique token arrives as the *shared* token of the same text.
Two processes cannot agree on a token neither of them registered, so the
shared namespace is what carries the sender's intent across.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import ClassVar, Union


class Token:
    """A unique event identifier, optionally owned by a TokenRegistry."""

    __slots__ = ("_registry", "description")

    def __init__(self, description: str = "") -> None:
        """Mint a new process-local unique token."""
        if not isinstance(description, str):
            msg = f"Token description must be a string, got {type(description).__name__}"
            raise TypeError(msg)
        self.description = description
        self._registry: TokenRegistry | None = None

    @classmethod
    def shared(cls, description: str) -> Token:
        """Return the token registered under ``description`` in this process."""
        return default_registry.get_or_create(description)

    @property
    def is_shared(self) -> bool:
        """Whether this token belongs to a registry."""
        return self._registry is not None

    def __repr__(self) -> str:
        """Return a debugging representation."""
        kind = "shared" if self.is_shared else "local"
        return f"Token({self.description!r}, {kind})"


class TokenRegistry:
    """Process-wide namespace of shared tokens keyed by display text."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._tokens: dict[str, Token] = {}
        self._lock = threading.Lock()

    def get_or_create(self, description: str) -> Token:
        """Return the token for ``description``, creating it if absent."""
        with self._lock:
            token = self._tokens.get(description)
            if token is None:
                token = Token(description)
                token._registry = self  # noqa: SLF001
                self._tokens[description] = token
            return token

    def get(self, description: str) -> Token | None:
        """Return the registered token for ``description`` or None."""
        with self._lock:
            return self._tokens.get(description)

    def __contains__(self, token: object) -> bool:
        """Whether ``token`` is owned by this registry."""
        return isinstance(token, Token) and token._registry is self  # noqa: SLF001

    def __len__(self) -> int:
        """Number of registered tokens."""
        with self._lock:
            return len(self._tokens)

    @staticmethod
    def same_identity(a: Token, b: Token) -> bool:
        """Identity rule shared by every registry.

        Two tokens denote the same event when both are registry tokens with
        the same display text, whichever process registered them.
        """
        return a.is_shared and b.is_shared and a.description == b.description


default_registry = TokenRegistry()


@dataclass(frozen=True)
class PlainName:
    """Event identified by a plain string."""

    name: str
    is_symbol: ClassVar[bool] = False

    @property
    def identifier(self) -> str:
        """The identifier callers registered with."""
        return self.name

    @property
    def wire_name(self) -> str:
        """Text sent over the wire."""
        return self.name


@dataclass(frozen=True)
class SharedToken:
    """Event identified by a Token handle."""

    token: Token
    is_symbol: ClassVar[bool] = True

    @property
    def identifier(self) -> Token:
        """The identifier callers registered with."""
        return self.token

    @property
    def wire_name(self) -> str:
        """Text sent over the wire."""
        return self.token.description


EventKey = Union[PlainName, SharedToken]
EventIdentifier = Union[str, Token]


def to_event_key(identifier: EventIdentifier | EventKey) -> EventKey:
    """Classify an identifier once, at the API boundary."""
    if isinstance(identifier, (PlainName, SharedToken)):
        return identifier
    if isinstance(identifier, Token):
        return SharedToken(identifier)
    if isinstance(identifier, str):
        return PlainName(identifier)
    msg = f"Event identifier must be str or Token, got {type(identifier).__name__}"
    raise TypeError(msg)


class EventCodec:
    """Converts event identifiers to and from their wire form."""

    def __init__(self, registry: TokenRegistry | None = None) -> None:
        """Initialize codec bound to ``registry`` (the process default if None)."""
        self.registry = registry if registry is not None else default_registry

    def encode(self, identifier: EventIdentifier | EventKey) -> tuple[str, bool]:
        """Return ``(name, is_symbol)`` for an identifier."""
        key = to_event_key(identifier)
        return key.wire_name, key.is_symbol

    def decode_key(self, name: str, is_symbol: bool) -> EventKey:
        """Resolve a wire name to an EventKey."""
        if not is_symbol:
            return PlainName(name)
        return SharedToken(self.registry.get_or_create(name))

    def decode(self, name: str, is_symbol: bool) -> EventIdentifier:
        """Resolve a wire name to a plain name or a shared Token."""
        return self.decode_key(name, is_symbol).identifier


default_codec = EventCodec()


def encode(identifier: EventIdentifier | EventKey) -> tuple[str, bool]:
    """Encode with the process-wide codec."""
    return default_codec.encode(identifier)


def decode(name: str, is_symbol: bool) -> EventIdentifier:
    """Decode with the process-wide codec."""
    return default_codec.decode(name, is_symbol)
