"""
In-process publish/subscribe channel.

Components publish named events; any number of observers (the WebSocket
broadcaster, tests, loggers) subscribe without the publisher knowing about
them. Handlers may be plain functions or coroutine functions.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Topics
STATUS_CHANGED = "status_changed"
TRADE_EXECUTED = "trade_executed"
LOG_APPENDED = "log_appended"
THOUGHT_RECORDED = "thought_recorded"

Handler = Callable[[Any], Any]


class EventBus:
    def __init__(self):
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns a function that removes it again."""
        self._subscribers[topic].append(handler)

        def unsubscribe():
            self.unsubscribe(topic, handler)

        return unsubscribe

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        handlers = self._subscribers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    def publish(self, topic: str, payload: Any = None) -> None:
        """
        Deliver payload to every subscriber of topic.

        A failing handler is logged and does not stop delivery to the rest.
        Coroutine results are scheduled on the running loop.
        """
        for handler in list(self._subscribers.get(topic, [])):
            try:
                result = handler(payload)
                if asyncio.iscoroutine(result):
                    self._schedule(topic, result)
            except Exception as e:
                logger.error(f"Error in {topic} subscriber: {e}")

    def _schedule(self, topic: str, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning(f"Dropped async {topic} subscriber: no running event loop")
            return

        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Error in async subscriber: {task.exception()}")
