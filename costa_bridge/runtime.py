"""
Service runtime for costa-bridge.

Owns the bridge client and both supervisors for the lifetime of the
service and implements the user-facing commands on top of them.
"""

import asyncio
import logging
import webbrowser
from typing import Callable, Optional, Set

from costa_bridge.auth import LoginPoller, LoginPollState
from costa_bridge.bridge import BridgeClient, BridgeError, LoginFailedError, LoginResult
from costa_bridge.config import settings
from costa_bridge.scheduling import AsyncioScheduler, Scheduler
from costa_bridge.usage import UsageSnapshot, UsageStream

logger = logging.getLogger("costa.runtime")


class CostaRuntime:
    """Extension-lifetime owner of the client, usage stream and login poller."""

    def __init__(
        self,
        client: BridgeClient,
        scheduler: Optional[Scheduler] = None,
        usage_stream: Optional[UsageStream] = None,
        open_browser: Optional[Callable[[str], object]] = None,
    ):
        self.client = client
        self.scheduler = scheduler or AsyncioScheduler()
        self.usage_stream = usage_stream or UsageStream(client, scheduler=self.scheduler)
        self.open_browser = open_browser
        self.login_poller: Optional[LoginPoller] = None
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def create(cls) -> "CostaRuntime":
        return cls(
            client=BridgeClient(),
            open_browser=webbrowser.open if settings.OPEN_BROWSER else None,
        )

    async def start(self) -> bool:
        """
        Check the login state and start the usage stream when logged in.

        Returns:
            True if the user is logged in
        """
        try:
            result = await self.client.status()
        except BridgeError as e:
            logger.error(f"runtime: Error checking login status: {e}")
            return False

        if not result.logged_in:
            logger.info("runtime: User is not logged in, usage stream stays idle")
            return False

        logger.info("runtime: User is logged in, starting usage stream")
        await self.usage_stream.connect()
        return True

    async def login(self) -> LoginResult:
        """
        Start the browser login flow.

        Raises:
            LoginFailedError: the CLI returned no auth URL
            BridgeError: the login call failed
        """
        result = await self.client.login()
        if not result.auth_url:
            message = "Login failed: No auth URL returned"
            if result.message:
                message += f" ({result.message})"
            raise LoginFailedError(message)

        if self.open_browser is not None:
            await asyncio.to_thread(self.open_browser, result.auth_url)

        if self.login_poller is not None:
            self.login_poller.cancel()

        self.login_poller = LoginPoller(
            self.client,
            scheduler=self.scheduler,
            on_success=self._on_login_success,
        )
        self.login_poller.start(result.timeout_seconds)
        return result

    def login_state(self) -> Optional[LoginPollState]:
        if self.login_poller is None:
            return None
        return self.login_poller.state

    def _on_login_success(self) -> None:
        task = asyncio.get_running_loop().create_task(self.usage_stream.connect())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def logout(self) -> None:
        await self.client.logout()
        logger.info("runtime: Logout successful")
        if self.login_poller is not None:
            self.login_poller.cancel()
        self.usage_stream.disconnect()

    async def refresh(self) -> Optional[UsageSnapshot]:
        logger.info("runtime: Manually refreshing usage data")
        return await self.usage_stream.fetch_usage_data()

    async def test_cli(self) -> str:
        status = await self.client.status()
        if not status.logged_in:
            return "Not logged in"
        points = status.points if status.points is not None else 0
        total_points = status.total_points if status.total_points is not None else 0
        return f"Logged in - Points: {points}/{total_points}"

    async def shutdown(self) -> None:
        logger.info("runtime: Shutting down, disconnecting usage stream")
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.usage_stream.close()
        if self.login_poller is not None:
            await self.login_poller.close()
