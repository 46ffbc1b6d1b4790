import logging
import time
from typing import Optional

import httpx
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class Notifier:
    """
    Hands events to an outbound webhook once the write that produced them
    has committed. Delivery problems are logged and swallowed; the caller's
    result never depends on them.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.transport = transport

    async def deliver(self, event: str, payload: dict) -> bool:
        if not self.webhook_url:
            logger.info("Notification skipped, no webhook configured", extra={"event": event})
            return False

        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(
                    self.webhook_url,
                    json={"event": event, "data": jsonable_encoder(payload)},
                )
                resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL):
            logger.error("Notification delivery failed", extra={
                "event": event,
                "target": self.webhook_url,
            }, exc_info=True)
            return False

        logger.info("Notification delivered", extra={
            "event": event,
            "target": self.webhook_url,
            "duration_ms": round((time.time() - start_time) * 1000, 2),
        })
        return True
