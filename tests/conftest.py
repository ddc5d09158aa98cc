import pytest

from floortrack import create_app, db
from floortrack.cli import seed_sample_data
from floortrack.config import TestingConfig
from floortrack.models import Order, OrderItem, Worker
from floortrack.notifications import Notifier
from floortrack.services import Services
from floortrack.workflow import OrderStatus


class RecordingNotifier(Notifier):
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail
        self.closed = False

    def send(self, notification):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append(notification)

    def close(self):
        self.closed = True

    @property
    def kinds(self):
        return [n.kind for n in self.sent]


@pytest.fixture()
def app():
    app = create_app(testing=True)
    with app.app_context():
        db.create_all()
        seed_sample_data()
    yield app


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def notifier(app):
    rec = RecordingNotifier()
    app.extensions["floortrack"] = Services.from_app(app, notifier=rec)
    return rec


@pytest.fixture()
def services(app, notifier):
    return app.extensions["floortrack"]


@pytest.fixture()
def make_order(ctx):
    """Create an order with ``n_items`` items; returns (order_id, [item_ids])."""
    counter = {"n": 0}

    def _make(n_items=1, status=OrderStatus.APPROVED, email="customer@example.com"):
        counter["n"] += 1
        order = Order(order_number=f"T{counter['n']:04d}", customer_name="Test", contact_email=email, status=status)
        db.session.add(order); db.session.flush()
        items = [OrderItem(order_id=order.id, description=f"Item {i}") for i in range(n_items)]
        db.session.add_all(items)
        db.session.commit()
        return order.id, [i.id for i in items]

    return _make


@pytest.fixture()
def worker_ids(ctx):
    return {w.token_id: w.id for w in Worker.query.all()}


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database so threads get separate connections."""

    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'floortrack.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30, "check_same_thread": False}}

    app = create_app(config_object=FileConfig)
    with app.app_context():
        db.create_all()
        seed_sample_data()
    yield app
    with app.app_context():
        db.engine.dispose()
