from __future__ import annotations

import logging
from typing import Sequence

from redis.exceptions import RedisError
from rq import Queue, Retry

from services.bot.application.interfaces import (
    NotificationDispatcher,
    WhatsappNotifier,
)
from services.bot.infrastructure.msg91 import NotificationError

LOGGER = logging.getLogger(__name__)

DELIVER_NOTIFICATION = "services.bot.worker.deliver_notification"


class InlineNotificationDispatcher(NotificationDispatcher):
    """Sends within the request; a failed send is logged and dropped."""

    def __init__(self, notifier: WhatsappNotifier) -> None:
        self._notifier = notifier

    def dispatch(self, address: str, text: str) -> None:
        try:
            self._notifier.send(address, text)
        except NotificationError:
            LOGGER.exception("Notification to %s was not delivered", address)


class RqNotificationDispatcher(NotificationDispatcher):
    """Hands delivery to an rq worker, which retries failed sends."""

    def __init__(
        self,
        queue: Queue,
        *,
        max_retries: int = 3,
        retry_intervals: Sequence[int] = (10, 30, 60),
    ) -> None:
        self._queue = queue
        self._max_retries = max_retries
        self._retry_intervals = list(retry_intervals)

    def dispatch(self, address: str, text: str) -> None:
        retry = (
            Retry(max=self._max_retries, interval=self._retry_intervals)
            if self._max_retries > 0
            else None
        )
        try:
            job = self._queue.enqueue(DELIVER_NOTIFICATION, address, text, retry=retry)
        except RedisError:
            LOGGER.exception("Could not enqueue notification for %s", address)
            return
        LOGGER.info(
            "Enqueued notification job id=%s for %s",
            getattr(job, "id", "unknown"),
            address,
        )
