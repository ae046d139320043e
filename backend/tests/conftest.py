"""
Pytest fixtures for venue POS backend tests.

Provides the app on in-memory SQLite, HTTP and Socket.IO test clients, and
small factories for catalog rows.
"""

import pytest
from venuepos import create_app
from venuepos.extensions import db, socketio
from venuepos.models import MenuItem, User
from venuepos.services.replication_service import LEASE_EXTENSION_KEY, LeaderLease


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions[LEASE_EXTENSION_KEY] = LeaderLease()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def socket_client(app, client, db_session):
    """Connected Socket.IO test client; the connect broadcast is already drained."""
    sio = socketio.test_client(app, flask_test_client=client)
    sio.get_received()
    yield sio
    if sio.is_connected():
        sio.disconnect()


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory for menu items with a preset counter and average cost."""

    def _make(name="Espresso", price_cents=250, stock=0, track_stock=True,
              stock_group_id=None, average_cost_cents=0, **extra):
        item = MenuItem(
            name=name,
            price_cents=price_cents,
            stock=stock,
            track_stock=track_stock,
            stock_group_id=stock_group_id,
            average_cost_cents=average_cost_cents,
            **extra,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make


@pytest.fixture(scope='function')
def cashier(db_session):
    user = User(username="Kamarier", pin="0000", role="CASHIER")
    db_session.add(user)
    db_session.commit()
    return user


def order_line(item, quantity=1, unique_id=None, **extra):
    """An order line the way devices send it."""
    line = {
        "id": item.id if hasattr(item, "id") else item,
        "name": getattr(item, "name", "Unknown"),
        "price": getattr(item, "price_cents", 100) / 100,
        "quantity": quantity,
    }
    if unique_id:
        line["uniqueId"] = unique_id
    line.update(extra)
    return line


def received_events(sio, name):
    """Payloads of every `name` event the Socket.IO test client has received."""
    return [packet["args"][0] if packet["args"] else None
            for packet in sio.get_received() if packet["name"] == name]
