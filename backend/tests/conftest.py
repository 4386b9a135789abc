"""
Pytest fixtures for laundry engine tests.

Provides an in-memory database, a test client, and a stocked branch.
"""

import pytest
from laundry import create_app
from laundry.extensions import db
from laundry.models import Branch, Employee, InventoryItem
from laundry.services import branch_service, inventory_service

MANAGER_USER_ID = 500
STAFF_USER_ID = 501
CUSTOMER_USER_ID = 900


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

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.expunge_all()


@pytest.fixture(scope='function')
def branch(db_session) -> Branch:
    return branch_service.create_branch(name="Lekki Central", code="LEK")


@pytest.fixture(scope='function')
def other_branch(db_session) -> Branch:
    return branch_service.create_branch(name="Ikeja Mall", code="IKJ")


@pytest.fixture(scope='function')
def employee(branch) -> Employee:
    return branch_service.create_employee(branch_id=branch.id, full_name="Ada Washer")


@pytest.fixture(scope='function')
def second_employee(branch) -> Employee:
    return branch_service.create_employee(branch_id=branch.id, full_name="Bola Ironer", job_role="IRONER")


def make_item(branch_id: int, category: str, stock: int, reorder_level: int = 2, name: str | None = None):
    return inventory_service.create_inventory_item(
        branch_id=branch_id,
        item_name=name or f"{category.title()} Stock",
        category=category,
        unit="pieces",
        initial_stock=stock,
        reorder_level=reorder_level,
        actor_user_id=MANAGER_USER_ID,
    )


@pytest.fixture(scope='function')
def items(branch) -> dict[str, InventoryItem]:
    """Detergent, softener and packaging with 10 units each."""
    return {
        category: make_item(branch.id, category, 10)
        for category in ("DETERGENT", "SOFTENER", "PACKAGING")
    }


def line(quantity: int, unit_price_cents: int, item_type: str = "Shirt") -> dict:
    return {"item_type": item_type, "quantity": quantity, "unit_price_cents": unit_price_cents}


def reload(instance):
    """Fresh copy of a row after writes issued outside the ORM."""
    db.session.expire_all()
    return db.session.get(type(instance), instance.id)


def actor_headers(user_id: int, role: str, branch_id: int | None = None) -> dict:
    """Identity headers as forwarded by the gateway."""
    headers = {'X-Actor-Id': str(user_id), 'X-Actor-Role': role}
    if branch_id is not None:
        headers['X-Actor-Branch-Id'] = str(branch_id)
    return headers
