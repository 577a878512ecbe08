"""Peer address normalization, the PeerSet value and address resolution."""

from __future__ import annotations

import ipaddress
import logging
import socket
from typing import Iterable, Iterator
from urllib.parse import urlsplit, urlunsplit

from webemitter.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}
_WILDCARD_HOSTS = frozenset({"", "0.0.0.0", "::", "[::]"})  # noqa: S104


def normalize_address(address: str) -> str:
    """Return the canonical form of a node address.

    Scheme and host are lower-cased, the scheme's default port is dropped,
    query/fragment are discarded and trailing slashes are stripped, so
    ``HTTP://Example.com:80/`` and ``http://example.com`` compare equal.

    Raises:
        ValueError: If the address is not an absolute http(s) URL

    """
    if not isinstance(address, str):
        msg = f"Address must be a string, got {type(address).__name__}"
        raise ValueError(msg)

    parts = urlsplit(address.strip())
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        msg = f"Address must be an http(s) URL: {address!r}"
        raise ValueError(msg)
    if not parts.hostname:
        msg = f"Address has no host: {address!r}"
        raise ValueError(msg)

    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    try:
        port = parts.port
    except ValueError as e:
        msg = f"Address has an invalid port: {address!r}"
        raise ValueError(msg) from e

    netloc = host if port is None or port == _DEFAULT_PORTS[scheme] else f"{host}:{port}"
    path = parts.path.rstrip("/")
    return urlunsplit((scheme, netloc, path, "", ""))


def join_url(base: str, path: str) -> str:
    """Join a route path onto a node's base address."""
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


class PeerSet:
    """Immutable, insertion-ordered set of normalized peer addresses."""

    __slots__ = ("_addresses",)

    def __init__(self, addresses: Iterable[str] = ()) -> None:
        """Normalize and deduplicate ``addresses``."""
        ordered: dict[str, None] = {}
        for address in addresses:
            ordered.setdefault(normalize_address(address), None)
        self._addresses: tuple[str, ...] = tuple(ordered)

    def __iter__(self) -> Iterator[str]:
        """Iterate addresses in insertion order."""
        return iter(self._addresses)

    def __len__(self) -> int:
        """Number of addresses."""
        return len(self._addresses)

    def __contains__(self, address: object) -> bool:
        """Membership after normalization."""
        if not isinstance(address, str):
            return False
        try:
            return normalize_address(address) in self._addresses
        except ValueError:
            return False

    def __eq__(self, other: object) -> bool:
        """Set equality, ignoring order."""
        if isinstance(other, PeerSet):
            return set(self._addresses) == set(other._addresses)
        return NotImplemented

    def __hash__(self) -> int:
        """Hash consistent with set equality."""
        return hash(frozenset(self._addresses))

    def __repr__(self) -> str:
        """Return a debugging representation."""
        return f"PeerSet({list(self._addresses)!r})"

    def union(self, addresses: Iterable[str]) -> PeerSet:
        """Return a new PeerSet with ``addresses`` appended."""
        return PeerSet((*self._addresses, *addresses))

    def with_address(self, address: str) -> PeerSet:
        """Return a new PeerSet that also contains ``address``."""
        return self.union((address,))

    def without(self, address: str | None) -> PeerSet:
        """Return a new PeerSet without ``address``."""
        if address is None:
            return self
        target = normalize_address(address)
        return PeerSet(a for a in self._addresses if a != target)

    def to_list(self) -> list[str]:
        """Addresses as a list, in insertion order."""
        return list(self._addresses)


def guess_local_ip() -> str | None:
    """Best-effort guess of the outward-facing IPv4 address.

    Connecting a UDP socket sends no packets but makes the OS pick the
    interface it would route through.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(("8.8.8.8", 80))
        local_ip = sock.getsockname()[0]
    except OSError as e:
        logger.debug("Could not detect local IP: %s", e)
        return None
    finally:
        sock.close()
    if local_ip and local_ip != "0.0.0.0":  # noqa: S104
        return local_ip
    return None


def _format_host(host: str) -> str:
    try:
        if ipaddress.ip_address(host).version == 6:
            return f"[{host}]"
    except ValueError:
        pass
    return host


def resolve_base_url(
    base_url: str | None,
    host: str | None,
    bound_port: int | None,
    scheme: str = "http",
) -> str:
    """Resolve this node's externally reachable address.

    Priority: explicit ``base_url``; else ``host`` plus the bound port when
    ``host`` is not a wildcard bind address; else the guessed local IP plus
    the bound port.

    Raises:
        ConfigurationError: If no usable address can be derived

    """
    if base_url:
        try:
            return normalize_address(base_url)
        except ValueError as e:
            msg = f"Invalid base_url: {e}"
            raise ConfigurationError(msg) from e

    if bound_port is None:
        msg = "Cannot resolve node address: server is not listening"
        raise ConfigurationError(msg)

    if host and host not in _WILDCARD_HOSTS:
        try:
            return normalize_address(f"{scheme}://{_format_host(host)}:{bound_port}")
        except ValueError as e:
            msg = f"Invalid host {host!r}: {e}"
            raise ConfigurationError(msg) from e

    local_ip = guess_local_ip()
    if local_ip is None:
        msg = "Cannot resolve node address: no base_url, no host and no usable interface"
        raise ConfigurationError(msg, {"host": host, "port": bound_port})
    return normalize_address(f"{scheme}://{local_ip}:{bound_port}")
