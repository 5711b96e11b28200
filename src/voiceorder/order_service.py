import httpx
import logging

from voiceorder.circuit_breaker import CircuitBreaker
from voiceorder.errors import OrderServiceUnavailable
from voiceorder.menu import MenuSnapshot
from voiceorder.session import Fulfillment, OrderFragment

logger = logging.getLogger(__name__)

ORDER_CHANNEL = "phone"


class OrderServiceClient:
    """HTTP client for the restaurant's Order Service.

    Wraps each call with a circuit breaker: after 3 consecutive failures,
    calls are skipped for 60s. Every failure surfaces as
    OrderServiceUnavailable so the materializer can fall back locally.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._circuit = CircuitBreaker(
            failure_threshold=3,
            cooldown_seconds=60.0,
            label="Order Service",
        )
        if client is not None:
            self._client = client
        else:
            headers = {"Content-Type": "application/json"}
            if api_key:
                headers["X-API-Key"] = api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
            )

    async def close(self):
        """Close the shared HTTP client. Call at shutdown."""
        await self._client.aclose()

    async def get_menu_snapshot(self) -> MenuSnapshot:
        if not self._circuit.should_try():
            logger.warning("Order Service circuit breaker open, skipping menu fetch")
            raise OrderServiceUnavailable("circuit open")
        try:
            resp = await self._client.get("/api/menu")
            resp.raise_for_status()
            payload = resp.json()
            if isinstance(payload, dict):
                payload = payload.get("items", [])
            if not isinstance(payload, list):
                raise ValueError(f"unexpected menu payload: {type(payload).__name__}")
            snapshot = MenuSnapshot.from_payload(payload)
        except (httpx.HTTPError, ValueError) as e:
            self._circuit.record_failure()
            logger.error("get_menu_snapshot failed: %s", e)
            raise OrderServiceUnavailable(str(e)) from e
        self._circuit.record_success()
        logger.info("Fetched menu snapshot: %d items", len(snapshot))
        return snapshot

    async def create_order(
        self,
        fragments: list[OrderFragment],
        *,
        channel: str = ORDER_CHANNEL,
        caller_number: str = "",
        call_id: str = "",
        notes: str = "",
        fulfillment: Fulfillment = Fulfillment.UNSPECIFIED,
    ) -> dict:
        """POST the order; returns {"order_id", "order_number"}."""
        if not self._circuit.should_try():
            logger.warning("Order Service circuit breaker open, skipping create_order")
            raise OrderServiceUnavailable("circuit open")
        payload = build_order_payload(
            fragments,
            channel=channel,
            caller_number=caller_number,
            call_id=call_id,
            notes=notes,
            fulfillment=fulfillment,
        )
        try:
            resp = await self._client.post("/api/orders", json=payload)
            resp.raise_for_status()
            result = _parse_created_order(resp.json())
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            self._circuit.record_failure()
            logger.error("create_order failed: %s", e)
            raise OrderServiceUnavailable(str(e)) from e
        self._circuit.record_success()
        return result


def build_order_payload(
    fragments: list[OrderFragment],
    *,
    channel: str,
    caller_number: str,
    call_id: str = "",
    notes: str = "",
    fulfillment: Fulfillment = Fulfillment.UNSPECIFIED,
) -> dict:
    return {
        "orderSource": channel,
        "phoneNumber": caller_number or "unknown",
        "callId": call_id,
        "orderType": fulfillment.value,
        "notes": notes,
        "items": [
            {
                "menuItemId": fragment.menu_item_id,
                "quantity": fragment.quantity,
                "notes": ", ".join(sorted(fragment.modifiers)),
            }
            for fragment in fragments
        ],
    }


def _parse_created_order(body: dict) -> dict:
    """Accept either a flat {orderId, orderNumber} or {order: {id, orderNumber}}."""
    order = body.get("order") if isinstance(body.get("order"), dict) else body
    order_id = order.get("orderId", order.get("id"))
    if order_id is None:
        raise KeyError("order id missing from Order Service response")
    order_number = order.get("orderNumber", order.get("order_number", order_id))
    return {"order_id": str(order_id), "order_number": str(order_number)}
