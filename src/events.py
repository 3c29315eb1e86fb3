"""
Relay Notifier

Publishes relay lifecycle events (started, stopped, exited, failed) to
in-process listeners and to operator webhooks. Webhook deliveries run as
background tasks so a slow receiver never holds up a start or stop.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

import aiohttp

from config import VERSION
from models import RelayEvent, WebhookSubscription

logger = logging.getLogger(__name__)

Listener = Callable[[RelayEvent], None]


def build_payload(event: RelayEvent) -> Dict[str, Any]:
    """JSON body posted to webhooks for one relay event."""
    return {
        "id": event.event_id,
        "event": event.event_type.value,
        "channel": event.channel,
        "timestamp": event.timestamp.isoformat(),
        "relay": event.data,
    }


class RelayNotifier:
    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._webhooks: Dict[str, WebhookSubscription] = {}
        self._listeners: List[Listener] = []
        self._session = session
        self._owns_session = session is None
        self._deliveries: Set[asyncio.Task] = set()

    @property
    def webhooks(self) -> List[WebhookSubscription]:
        return list(self._webhooks.values())

    async def start(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": f"kick-relay/{VERSION}"})
        logger.info(f"Relay notifier started with {len(self._webhooks)} webhook(s)")

    async def close(self, timeout: float = 10.0):
        """Let in-flight deliveries finish (up to `timeout`), then release the HTTP session."""
        if self._deliveries:
            done, pending = await asyncio.wait(list(self._deliveries), timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(f"Abandoned {len(pending)} webhook delivery(s) on shutdown")

        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def subscribe(self, webhook: WebhookSubscription) -> bool:
        """Register a webhook. Returns False when it replaced one for the same URL."""
        url = str(webhook.url)
        replaced = url in self._webhooks
        self._webhooks[url] = webhook
        logger.info(f"{'Updated' if replaced else 'Added'} webhook {url}")
        return not replaced

    def unsubscribe(self, url: str) -> bool:
        if self._webhooks.pop(url, None) is None:
            return False
        logger.info(f"Removed webhook {url}")
        return True

    async def publish(self, event: RelayEvent):
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Relay event listener {getattr(listener, '__name__', listener)} failed: {e}")

        targets = [wh for wh in self._webhooks.values() if wh.wants(event.event_type)]
        if not targets:
            return
        if self._session is None:
            logger.debug(f"Notifier not started, skipping webhooks for {event.event_type.value}")
            return

        payload = build_payload(event)
        for webhook in targets:
            task = asyncio.create_task(self._deliver(webhook, payload))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, webhook: WebhookSubscription, payload: Dict[str, Any]) -> bool:
        url = str(webhook.url)
        timeout = aiohttp.ClientTimeout(total=webhook.timeout)
        attempts = webhook.retries + 1

        for attempt in range(1, attempts + 1):
            try:
                async with self._session.post(
                        url, json=payload, headers=webhook.headers, timeout=timeout) as response:
                    if response.status < 400:
                        logger.debug(f"Delivered {payload['event']} to {url}")
                        return True
                    problem = f"HTTP {response.status}"
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                problem = str(e) or type(e).__name__

            logger.warning(f"Webhook {url} attempt {attempt}/{attempts} failed: {problem}")
            if attempt < attempts:
                await asyncio.sleep(webhook.retry_backoff * 2 ** (attempt - 1))

        logger.error(f"Giving up on {payload['event']} webhook to {url}")
        return False
