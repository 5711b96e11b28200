import pytest
from voiceorder.config import Settings
from voiceorder.engine import OrderIntakeEngine
from voiceorder.errors import OrderServiceUnavailable
from voiceorder.locale_bundle import load_bundle
from voiceorder.menu import MenuSnapshot
from voiceorder.session import CallSession
from voiceorder.state_machine import StateMachine

MENU_PAYLOAD = [
    {"id": 1, "name": "Butter Chicken", "aliases": ["murgh makhani", "बटर चिकन"], "price": 320, "category": "Main Course"},
    {"id": 2, "name": "Naan", "aliases": "nan, नान", "price": 40, "category": "Breads"},
    {"id": 3, "name": "Paneer Tikka", "price": 260, "category": "Starters"},
    {"id": 4, "name": "Chicken Biryani", "aliases": ["biryani", "బిర్యానీ"], "price": 280, "category": "Rice"},
    {"id": 5, "name": "Masala Dosa", "aliases": ["dosa"], "price": 120, "category": "South Indian"},
    {"id": 6, "name": "Gulab Jamun", "price": 90, "category": "Desserts", "isAvailable": False},
]


class FakeOrderService:
    """In-memory stand-in for OrderServiceClient."""

    def __init__(self, menu: MenuSnapshot, fail_menu: bool = False, fail_orders: bool = False):
        self.menu = menu
        self.fail_menu = fail_menu
        self.fail_orders = fail_orders
        self.orders = []
        self.menu_fetches = 0
        self.closed = False

    async def get_menu_snapshot(self) -> MenuSnapshot:
        self.menu_fetches += 1
        if self.fail_menu:
            raise OrderServiceUnavailable("menu down")
        return self.menu

    async def create_order(self, fragments, **kwargs) -> dict:
        if self.fail_orders:
            raise OrderServiceUnavailable("orders down")
        self.orders.append({"fragments": list(fragments), **kwargs})
        n = len(self.orders)
        return {"order_id": f"ord-{n}", "order_number": f"A-{100 + n}"}

    async def close(self):
        self.closed = True


class RecordingSink:
    """WebhookSink stand-in that keeps published events."""

    def __init__(self):
        self.events = []

    def publish(self, payload: dict) -> None:
        self.events.append(payload)

    async def drain(self) -> None:
        pass

    def named(self, event: str) -> list[dict]:
        return [e for e in self.events if e.get("event") == event]


@pytest.fixture
def menu():
    return MenuSnapshot.from_payload(MENU_PAYLOAD)


@pytest.fixture
def settings():
    return Settings(order_service_url="https://orders.example.com", session_lock_timeout_seconds=0.05)


@pytest.fixture
def bundle():
    return load_bundle()


@pytest.fixture
def machine(settings, bundle):
    return StateMachine(settings, bundle)


@pytest.fixture
def session(menu):
    return CallSession(call_id="CA_test_0001", caller_number="+15125551234", menu=menu)


@pytest.fixture
def order_service(menu):
    return FakeOrderService(menu)


@pytest.fixture
def notifier():
    return RecordingSink()


@pytest.fixture
def alerts():
    return RecordingSink()


@pytest.fixture
def engine(settings, bundle, order_service, notifier, alerts):
    return OrderIntakeEngine(
        settings,
        order_service=order_service,
        notifier=notifier,
        alerts=alerts,
        bundle=bundle,
    )
