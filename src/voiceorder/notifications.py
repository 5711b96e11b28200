import asyncio
import httpx
import logging

logger = logging.getLogger(__name__)


class WebhookSink:
    """Fire-and-forget JSON webhook for notification and alert events.

    publish() never blocks the caller's turn: the POST runs as a background
    task and retries once after 2s. With no URL configured events are only
    logged.
    """

    def __init__(self, url: str = "", secret: str = "", label: str = "Webhook", timeout: float = 10.0):
        self.url = url
        self.secret = secret
        self.label = label
        self.timeout = timeout
        self._tasks: set[asyncio.Task] = set()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers["X-Webhook-Secret"] = self.secret
        return headers

    async def _post_with_retry(self, payload: dict) -> dict:
        """POST with one retry after 2s on failure."""
        for attempt in range(2):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(self.url, json=payload, headers=self._headers())
                    resp.raise_for_status()
                    return {"success": True, "status": resp.status_code}
            except httpx.HTTPError as e:
                if attempt == 0:
                    logger.warning("%s failed (attempt 1), retrying in 2s: %s", self.label, e)
                    await asyncio.sleep(2)
                else:
                    logger.error("%s failed after retry: %s", self.label, e)
                    return {"success": False, "error": str(e)}
        return {"success": False, "error": "unreachable"}

    async def send(self, payload: dict) -> dict:
        if not self.url:
            logger.info("%s not configured, event %s logged only", self.label, payload.get("event"))
            return {"success": False, "error": "not configured"}
        return await self._post_with_retry(payload)

    def publish(self, payload: dict) -> None:
        """Schedule send() without waiting for it."""
        if not self.url:
            logger.info("%s not configured, event %s logged only", self.label, payload.get("event"))
            return
        task = asyncio.get_running_loop().create_task(self.send(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for in-flight deliveries. Used at shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
