"""
Pytest configuration and shared fixtures for mtp-explorer tests.

This module provides common fixtures and utilities used across all test modules.
"""

import copy
from typing import Iterable, List, Tuple

import pytest

from mtp_explorer.config import settings
from mtp_explorer.domain.models import CleanedResult, DeviceSession
from mtp_explorer.mtp.channel_lock import ChannelLock
from mtp_explorer.mtp.command_runners import StreamEvent
from mtp_explorer.mtp.device import MtpDevice
from mtp_explorer.mtp.session import SessionGuard


# ==============================================================================
# Settings / Clock
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """
    Auto-use fixture that points the settings store at a temp file.

    Every test starts from the default settings and never touches the
    user's real settings.json.
    """
    monkeypatch.setattr(settings, "SETTINGS_PATH", tmp_path / "settings.json")
    monkeypatch.setattr(
        settings.settings_store, "values", copy.deepcopy(settings.DEFAULT_SETTINGS)
    )
    monkeypatch.delenv("MTP_EXPLORER_CLI", raising=False)
    yield settings.settings_store


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: float = 10_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ==============================================================================
# Device Fixtures
# ==============================================================================


@pytest.fixture
def device_session() -> DeviceSession:
    return DeviceSession(description="Pixel 7")


@pytest.fixture
def session_guard(device_session) -> SessionGuard:
    """SessionGuard whose detector always succeeds without a subprocess."""
    return SessionGuard(lambda: device_session)


@pytest.fixture
def mtp_device(session_guard) -> MtpDevice:
    return MtpDevice(binary="mtp-cli", guard=session_guard, channel=ChannelLock("test"))


@pytest.fixture
def ok_result() -> CleanedResult:
    return CleanedResult(data="", stderr=None, error=None)


# ==============================================================================
# Streaming Process Fake
# ==============================================================================


class FakeStreamingProcess:
    """
    Stand-in for StreamingProcess that replays a scripted event list.

    Each script entry is ``(timestamp_ms, StreamEvent)``; the clock is moved
    to the timestamp before the event is yielded.
    """

    def __init__(self, script: Iterable[Tuple[float, StreamEvent]], clock: FakeClock):
        self.script = list(script)
        self.clock = clock
        self.commands: List = []
        self.terminated = False
        self.exited = False
        self.closed = False

    def __call__(self, command):
        self.commands.append(command)
        return self

    def start(self):
        return self

    def events(self):
        for timestamp, event in self.script:
            self.clock.now = timestamp
            if event.kind == "exit":
                self.exited = True
            yield event

    def terminate(self):
        self.terminated = True

    def close(self):
        if not self.exited:
            self.terminate()
        self.closed = True


@pytest.fixture
def streaming_factory(mocker, fake_clock):
    """
    Fixture returning a helper that patches the orchestrator's StreamingProcess.

    Usage:
        fake = streaming_factory([(10_000, StreamEvent("exit", returncode=0))])
    """

    def install(script):
        fake = FakeStreamingProcess(script, fake_clock)
        mocker.patch("mtp_explorer.transfer.StreamingProcess", fake)
        return fake

    return install
