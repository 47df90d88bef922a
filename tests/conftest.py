"""Shared test fixtures for borrowbuf.

Fixtures defined here are available to all tests in the suite without
needing an explicit import. Add project-wide fixtures here; keep
domain-specific fixtures close to the tests that use them.
"""
from __future__ import annotations

from collections.abc import Iterator

import pytest

from borrowbuf.buffer.owner import Owner, new_owned
from borrowbuf.config import BufferConfig, set_default_config


@pytest.fixture()
def package_name() -> str:
    """Return the importable package name for assertions."""
    return "borrowbuf"


@pytest.fixture()
def expected_version() -> str:
    """Return the current expected version string.

    Update this fixture when cutting a release so that the version
    test immediately catches stale ``__version__`` values.
    """
    return "0.1.0"


@pytest.fixture(autouse=True)
def _reset_default_config(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep ``BORROWBUF_*`` variables and the cached default config out of tests."""
    for name in (
        "BORROWBUF_GROWTH_FACTOR",
        "BORROWBUF_MIN_CAPACITY",
        "BORROWBUF_ENCODING",
        "BORROWBUF_THREAD_SAFE",
        "BORROWBUF_WARN_ON_LEAK",
        "BORROWBUF_STRICT_CONTRACTS",
    ):
        monkeypatch.delenv(name, raising=False)
    set_default_config(None)
    yield
    set_default_config(None)


@pytest.fixture()
def hello() -> Owner:
    """An owned text buffer holding ``"hello"``."""
    return new_owned("hello")


@pytest.fixture()
def raw_config() -> BufferConfig:
    """Config for raw byte buffers with no encoding checks."""
    return BufferConfig(encoding=None)
