"""Pytest configuration and shared fixtures for webemitter tests."""

from __future__ import annotations

import logging
import os
import socket

import pytest

from webemitter.events.codec import EventCodec, TokenRegistry
from webemitter.node import WebEventEmitter


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("unit", "marks tests as unit tests"),
        ("integration", "marks tests as integration tests"),
        ("property", "marks tests as property-based tests"),
        ("cli", "marks tests as CLI tests"),
        ("peer", "marks tests as peer protocol tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolate_webemitter_env(monkeypatch, tmp_path):
    """Keep WEBEMITTER_* variables and stray config files out of tests."""
    for name in list(os.environ):
        if name.startswith("WEBEMITTER_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    # setup_logging detaches the package tree from the root logger
    package_logger = logging.getLogger("webemitter")
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def codec():
    """Codec bound to a private token registry."""
    return EventCodec(TokenRegistry())


@pytest.fixture
def unused_address():
    """Address of a local port that nothing listens on."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"http://127.0.0.1:{port}"


@pytest.fixture
async def node_factory():
    """Create listening nodes on 127.0.0.1 with free ports; closes them all afterwards."""
    nodes: list[WebEventEmitter] = []

    async def _create(**options) -> WebEventEmitter:
        settings = {
            "host": "127.0.0.1",
            "port": 0,
            "keepalive_interval": 3600.0,
            "probe_timeout": 0.5,
            "request_timeout": 2.0,
        }
        settings.update(options)
        node = WebEventEmitter(**settings)
        nodes.append(node)
        await node.listen()
        return node

    yield _create

    for node in reversed(nodes):
        await node.close()
