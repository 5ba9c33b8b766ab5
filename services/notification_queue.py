"""
Background delivery queue for outgoing email.

Requests enqueue a message and return immediately. A single worker task sends
messages one by one, retrying failures with exponential backoff; a message
that still fails after the last attempt is logged and dropped.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from core.logger import logger
import config

Sender = Callable[[Any], Awaitable[Any]]


@dataclass
class OutgoingMessage:
    message: Any
    description: str


class NotificationQueue:
    """Fire-and-forget mail delivery with bounded retries."""

    def __init__(
        self,
        sender: Sender,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ):
        self.sender = sender
        self.max_retries = max_retries if max_retries is not None else config.MAIL_MAX_RETRIES
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else config.MAIL_RETRY_BACKOFF_SECONDS
        self._queue: "asyncio.Queue[OutgoingMessage]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def start(self):
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())
            logger.info("Notification queue started")

    async def stop(self, drain_timeout: float = 5.0):
        """Give pending messages a moment to go out, then stop the worker."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Notification queue stopped with {self._queue.qsize()} undelivered message(s)")
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Notification queue stopped")

    def enqueue(self, message: Any, description: str = "email"):
        self._queue.put_nowait(OutgoingMessage(message=message, description=description))

    async def _run(self):
        while True:
            item = await self._queue.get()
            try:
                await self.deliver(item)
            finally:
                self._queue.task_done()

    async def deliver(self, item: OutgoingMessage) -> bool:
        """Send one message, retrying with exponential backoff. Returns True on success."""
        for attempt in range(1, self.max_retries + 1):
            try:
                await self.sender(item.message)
                logger.info(f"Delivered {item.description}")
                return True
            except Exception as e:
                if attempt == self.max_retries:
                    logger.error(
                        f"Giving up on {item.description} after {attempt} attempt(s): {e}",
                        exc_info=True,
                    )
                    return False
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning(f"Delivery of {item.description} failed (attempt {attempt}), retrying in {delay:.1f}s: {e}")
                await asyncio.sleep(delay)
        return False
