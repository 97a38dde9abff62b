"""Shared fixtures: a virtual-clock scheduler and a fake costa client."""

import asyncio
from typing import Callable, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from costa_bridge.bridge.schemas import LoginResult, LoginStatus, StatusResult, TokenResult
from costa_bridge.scheduling import Scheduler


async def settle(rounds: int = 20) -> None:
    """Let spawned tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualTimer:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]):
        self.when = when
        self.seq = seq
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """Scheduler driven by a virtual clock that only moves on advance()."""

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._timers: List[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now + delay, self._seq, callback)
        self._seq += 1
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> List[ManualTimer]:
        return [timer for timer in self._timers if not timer.cancelled()]

    async def advance(self, seconds: float) -> None:
        """Fire every timer due within ``seconds``, letting tasks settle in between."""
        target = self.now + seconds
        while True:
            due = [timer for timer in self.pending if timer.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self.now = timer.when
            timer.callback()
            await settle()
        self.now = target


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def logged_in_status() -> StatusResult:
    return StatusResult(logged_in=True, points=5, total_points="∞")


@pytest.fixture
def fake_client(logged_in_status):
    """Stand-in for BridgeClient whose CLI calls are AsyncMocks."""
    client = MagicMock()
    client.status = AsyncMock(return_value=logged_in_status)
    client.login = AsyncMock(
        return_value=LoginResult(
            status=LoginStatus.WAITING_FOR_USER,
            message="Finish signing in in your browser",
            auth_url="https://auth.example.com/device?code=abc",
            timeout_seconds=120,
        )
    )
    client.logout = AsyncMock(return_value=None)
    client.token = AsyncMock(
        return_value=TokenResult(access_token="tok-123", expires_at=1767225600, token_type="Bearer")
    )
    client.version = AsyncMock(return_value="costa 1.4.2")
    return client
