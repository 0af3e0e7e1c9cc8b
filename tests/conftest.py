# tests/conftest.py
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from dependency_injector import providers

from orderflow.adapters.persistence.database import Database
from orderflow.adapters.realtime.registry import EventRegistry
from orderflow.adapters.realtime.publisher import RealtimePublisher
from orderflow.core.domain.models import (
    DecisionEmail,
    DecisionEmailStatus,
    ImageUpload,
    Order,
    OrderItem,
    OrderStatus,
    OrderSubmission,
    Payment,
    Team,
    UploadResult,
    UploadStatus,
)
from orderflow.core.ports.catalog_repository import ICatalogRepository
from orderflow.core.ports.event_publisher import IEventPublisher
from orderflow.core.ports.mailer import IMailer, SendResult
from orderflow.core.ports.object_storage import IObjectStorage, IUploadThrottler
from orderflow.core.ports.order_repository import IOrderRepository
from orderflow.shared.container import Container

ADMIN_KEY = "test-admin-key"
T0 = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


# --- Mocked Ports ---

@pytest.fixture(scope="function")
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def mock_order_repo():
    """Returns a mock Order Repository. Conditional updates default to 'lost the race'."""
    repo = MagicMock(spec=IOrderRepository)
    repo.create = AsyncMock(side_effect=lambda order: order)
    repo.get = AsyncMock(return_value=None)
    repo.transaction_id_exists = AsyncMock(return_value=False)
    repo.list_page = AsyncMock(return_value=[])
    repo.list_by_status = AsyncMock(return_value=[])
    repo.complete_upload = AsyncMock(return_value=None)
    repo.fail_upload = AsyncMock(return_value=None)
    repo.restart_upload = AsyncMock(return_value=None)
    repo.fail_stale_uploads = AsyncMock(return_value=[])
    repo.apply_decision = AsyncMock(return_value=None)
    repo.mark_delivered = AsyncMock(return_value=None)
    repo.claim_decision_email = AsyncMock(return_value=None)
    repo.record_email_sent = AsyncMock(return_value=None)
    repo.record_email_failure = AsyncMock(return_value=None)
    repo.release_email_claim = AsyncMock(return_value=None)
    repo.list_email_candidates = AsyncMock(return_value=[])
    repo.health_check = AsyncMock(return_value=True)
    return repo


@pytest.fixture(scope="function")
def mock_catalog_repo():
    repo = MagicMock(spec=ICatalogRepository)
    repo.list_foods = AsyncMock(return_value=[])
    repo.save_food = AsyncMock(side_effect=lambda food: food)
    repo.save_payment_qr = AsyncMock(side_effect=lambda qr: qr)
    repo.fail_stale_food_uploads = AsyncMock(return_value=[])
    repo.fail_stale_qr_uploads = AsyncMock(return_value=[])
    return repo


@pytest.fixture(scope="function")
def mock_publisher():
    """Returns a mock realtime publisher that records every event."""
    publisher = MagicMock(spec=IEventPublisher)
    publisher.to_operators = AsyncMock(return_value=1)
    publisher.to_customers = AsyncMock(return_value=1)
    return publisher


@pytest.fixture(scope="function")
def mock_mailer():
    mailer = MagicMock(spec=IMailer)
    mailer.send_decision = AsyncMock(return_value=SendResult.sent())
    return mailer


@pytest.fixture(scope="function")
def mock_storage():
    storage = MagicMock(spec=IObjectStorage)
    storage.upload = AsyncMock(return_value=UploadResult(url="https://cdn.test/p/1.png", storage_id="p/1.png"))
    storage.delete = AsyncMock()
    storage.health_check = AsyncMock(return_value=True)
    return storage


@pytest.fixture(scope="function")
def mock_throttler():
    throttler = MagicMock(spec=IUploadThrottler)
    throttler.submit = AsyncMock(return_value=UploadResult(url="https://cdn.test/p/1.png", storage_id="p/1.png"))
    return throttler


@pytest.fixture(scope="function")
def container(
    mock_order_repo, mock_catalog_repo, mock_publisher, mock_mailer, mock_storage, mock_throttler, clock
):
    """
    Sets up the Dependency Injection Container for testing.
    It overrides real infrastructure providers with the mocks defined above.
    """
    container = Container()

    # Override dependencies with mocks
    container.order_repository.override(mock_order_repo)
    container.catalog_repository.override(mock_catalog_repo)
    container.publisher.override(mock_publisher)
    container.mailer.override(mock_mailer)
    container.object_storage.override(mock_storage)
    container.upload_throttler.override(mock_throttler)
    container.clock.override(clock)
    container.mail_enabled.override(providers.Object(True))
    container.admin_api_key.override(providers.Object(ADMIN_KEY))

    yield container

    # Clean up overrides after test
    container.unwire()
    container.reset_override()


# --- Real Infrastructure (temporary SQLite file) ---

@pytest.fixture(scope="function")
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'orders.db'}")
    db.create_all()
    yield db
    db.engine.dispose()


@pytest.fixture(scope="function")
def registries():
    operators = EventRegistry("operators", filter_by_account=False, queue_size=10)
    customers = EventRegistry("customers", filter_by_account=True, queue_size=10)
    return operators, customers


@pytest.fixture(scope="function")
def publisher(registries):
    operators, customers = registries
    return RealtimePublisher(operators, customers)


# --- Sample Data ---

@pytest.fixture
def sample_submission():
    """The TXN1 cart: 3 lines, 4 units, subtotal 500."""
    return OrderSubmission(
        account_key="Team.Alpha@klu.ac.in",
        team_name="Alpha",
        leader_name="Asha Kumar",
        phone="9876543210",
        email="team.alpha@klu.ac.in",
        transaction_id="TXN1",
        items=[
            OrderItem(client_id="f1", name="Veg Biryani", price=150, quantity=2),
            OrderItem(client_id="f2", name="Paneer Roll", price=120, quantity=1),
            OrderItem(client_id="f3", name="Cold Coffee", price=80, quantity=1),
        ],
    )


@pytest.fixture
def sample_image():
    return ImageUpload(data=b"\x89PNG fake bytes", filename="proof.png", content_type="image/png")


def make_order(
    order_id: str = "order1",
    *,
    transaction_id: str = "TXN1",
    account_key: str = "team.alpha@klu.ac.in",
    status: OrderStatus = OrderStatus.PLACED,
    email: str = "team.alpha@klu.ac.in",
    created_at: datetime = T0,
    upload_status: UploadStatus = UploadStatus.PENDING,
    email_status: DecisionEmailStatus = DecisionEmailStatus.NONE,
    attempts: int = 0,
    items=None,
) -> Order:
    items = items or [OrderItem(client_id="f1", name="Veg Biryani", price=150, quantity=2)]
    return Order(
        id=order_id,
        account_key=account_key,
        transaction_id_normalized=transaction_id.lower(),
        status=status,
        team=Team(team_name="Alpha", leader_name="Asha Kumar", phone="9876543210", email=email),
        items=items,
        total_items=sum(i.quantity for i in items),
        subtotal=sum(i.price * i.quantity for i in items),
        payment=Payment(transaction_id=transaction_id, upload_status=upload_status, upload_requested_at=created_at),
        decision_email=DecisionEmail(
            type=status.value if status in (OrderStatus.VERIFIED, OrderStatus.REJECTED) else "",
            status=email_status,
            attempts=attempts,
        ),
        created_at=created_at,
        updated_at=created_at,
    )


@pytest.fixture
def order_factory():
    return make_order
