"""Turns a confirmed PendingOrder into an order id.

The Order Service is tried first. If it is unavailable the caller is still
told their order was taken: a synthetic local id is issued and the full
order is published to the operational error sink so staff can re-enter it.
"""

import logging
from dataclasses import dataclass

from voiceorder.errors import OrderServiceUnavailable
from voiceorder.order_service import ORDER_CHANNEL, OrderServiceClient, build_order_payload
from voiceorder.session import PendingOrder

logger = logging.getLogger(__name__)

LOCAL_ORDER_PREFIX = "LOCAL-PHONE-"
LOCAL_NUMBER_PREFIX = "P-"


@dataclass(frozen=True)
class MaterializedOrder:
    order_id: str
    order_number: str
    synthetic: bool = False


def local_order_id(call_id: str) -> str:
    return f"{LOCAL_ORDER_PREFIX}{call_id}"


def local_order_number(call_id: str) -> str:
    return f"{LOCAL_NUMBER_PREFIX}{call_id[-6:].upper()}"


class OrderMaterializer:
    def __init__(self, order_service: OrderServiceClient, error_sink=None):
        self.order_service = order_service
        self.error_sink = error_sink

    async def materialize(self, pending: PendingOrder, caller_number: str, call_id: str) -> MaterializedOrder:
        if pending.is_empty:
            raise ValueError(f"Cannot materialize an empty order for call {call_id}")

        try:
            created = await self.order_service.create_order(
                list(pending.fragments),
                channel=ORDER_CHANNEL,
                caller_number=caller_number,
                call_id=call_id,
                notes=pending.notes,
                fulfillment=pending.fulfillment,
            )
        except OrderServiceUnavailable as e:
            logger.warning("Order Service unavailable for call %s, issuing local order id: %s", call_id, e)
            result = MaterializedOrder(
                order_id=local_order_id(call_id),
                order_number=local_order_number(call_id),
                synthetic=True,
            )
            self._report_unavailable(pending, caller_number, call_id, result, str(e))
            return result

        logger.info("Order %s created for call %s", created["order_id"], call_id)
        return MaterializedOrder(order_id=created["order_id"], order_number=created["order_number"])

    def _report_unavailable(self, pending, caller_number, call_id, result, reason):
        if self.error_sink is None:
            return
        self.error_sink.publish({
            "event": "order_service_unavailable",
            "call_id": call_id,
            "order_id": result.order_id,
            "order_number": result.order_number,
            "reason": reason,
            "order": build_order_payload(
                list(pending.fragments),
                channel=ORDER_CHANNEL,
                caller_number=caller_number,
                call_id=call_id,
                notes=pending.notes,
                fulfillment=pending.fulfillment,
            ),
        })
