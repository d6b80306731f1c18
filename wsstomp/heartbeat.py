import asyncio
import logging
from typing import Any, Callable, Optional

from contextlib import suppress


class StompHeartbeater:

    HEART_BEAT = "\n"

    def __init__(
        self,
        transport: Any,
        logger: Optional[logging.Logger] = None,
        interval: int = 1000,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._transport = transport
        self._loop = loop or asyncio.get_event_loop()
        self.interval = interval / 1000.0
        self.task: Optional["asyncio.Task[None]"] = None
        self.is_started = False
        self.logger = logger or logging.getLogger("wsstomp.heartbeat")

    def start(self) -> None:
        if self.task:
            self.task.cancel()

        self.is_started = True
        self.task = self._loop.create_task(self.run())

    async def stop(self) -> None:
        if self.is_started and self.task:
            self.is_started = False
            # Stop task and await it stopped:
            self.task.cancel()
            with suppress(asyncio.CancelledError):
                await self.task
            self.task = None

    def shutdown(self) -> None:
        self.is_started = False
        if self.task:
            self.task.cancel()
            self.task = None

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.send()

    def send(self) -> None:
        self.logger.debug(">>> PING")
        self._transport.write(self.HEART_BEAT)


class StompHeartbeatMonitor(StompHeartbeater):
    """Checks inbound activity every interval and reports a timeout once
    nothing was seen for more than two intervals."""

    GRACE_FACTOR = 2

    def __init__(
        self,
        last_activity: Callable[[], float],
        on_timeout: Callable[[float], None],
        logger: Optional[logging.Logger] = None,
        interval: int = 1000,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        super().__init__(None, logger=logger, interval=interval, loop=loop)
        self._last_activity = last_activity
        self._on_timeout = on_timeout

    def expired(self) -> Optional[float]:
        delta = self._loop.time() - self._last_activity()
        if delta > self.interval * self.GRACE_FACTOR:
            return delta
        return None

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)

            delta = self.expired()
            if delta is not None:
                self.logger.debug(
                    "Did not receive server activity for the last %dms", delta * 1000
                )
                self.is_started = False
                self.task = None
                self._on_timeout(delta)
                return
