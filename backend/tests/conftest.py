"""
Pytest fixtures for Uniform Palace backend tests.

Provides test database setup, staff users with different permission flags,
catalog/customer fixtures and the test client.
"""

import pytest
from uniform_palace import create_app
from uniform_palace.extensions import db
from uniform_palace.services import customer_service, product_service
from uniform_palace.services.auth_service import create_user
from uniform_palace.services.notification_service import outbox

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_LOG_ROUNDS': 4,
        'MAIL_ENABLED': True,
        'MAIL_SUPPRESS_SEND': True,
        'MAIL_ASYNC': False,
        'ADMIN_EMAIL': 'office@uniformpalace.test',
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
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
        outbox().clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def mail_outbox(db_session):
    """Messages captured by the notification sender during the test."""
    return outbox()


# =============================================================================
# USERS
# =============================================================================


@pytest.fixture(scope='function')
def admin_user(db_session):
    """Admin role: passes every permission check."""
    return create_user(
        username="admin",
        email="admin@uniformpalace.test",
        password=PASSWORD,
        full_name="Office Admin",
        role="admin",
    )


@pytest.fixture(scope='function')
def staff_user(db_session):
    """Staff with the default permission flags (everything except users)."""
    return create_user(
        username="sales_staff",
        email="sales@uniformpalace.test",
        password=PASSWORD,
        full_name="Sales Staff",
        role="staff",
    )


@pytest.fixture(scope='function')
def restricted_user(db_session):
    """Staff that may only work with inquiries."""
    return create_user(
        username="front_desk",
        email="desk@uniformpalace.test",
        password=PASSWORD,
        full_name="Front Desk",
        role="staff",
        permissions={
            "customers": False,
            "products": False,
            "orders": False,
            "inquiries": True,
            "reports": False,
            "users": False,
        },
    )


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, staff_user.username))


@pytest.fixture
def restricted_headers(client, restricted_user):
    return auth_headers(get_auth_token(client, restricted_user.username))


# =============================================================================
# RECORDS
# =============================================================================


@pytest.fixture(scope='function')
def customer(db_session, staff_user):
    return customer_service.create_customer(
        patch={
            "name": "St. Mary's School",
            "email": "office@stmarys.test",
            "phone": "+91 98200 00001",
            "company": "St. Mary's School",
            "business_type": "school",
            "street": "12 Hill Road",
            "city": "Mumbai",
            "state": "Maharashtra",
            "pincode": "400050",
        },
        actor_id=staff_user.id,
    )


@pytest.fixture(scope='function')
def shirt(db_session, staff_user):
    """In-stock product with two bulk tiers above a minimum order of 10."""
    return product_service.create_product(
        patch={
            "code": "SCH-SHIRT-01",
            "name": "School Shirt",
            "category": "educational",
            "uniform_type": "school",
            "base_price_cents": 45000,
            "stock_quantity": 100,
            "reorder_level": 10,
            "minimum_order_quantity": 10,
        },
        price_tiers=[
            {"min_quantity": 10, "max_quantity": 49, "price_per_unit_cents": 42000, "discount_percent": 6},
            {"min_quantity": 50, "max_quantity": None, "price_per_unit_cents": 39000, "discount_percent": 13},
        ],
        actor_id=staff_user.id,
    )


@pytest.fixture(scope='function')
def apron(db_session, staff_user):
    """Product with little stock and no tiers."""
    return product_service.create_product(
        patch={
            "code": "HTL-APRON-01",
            "name": "Chef Apron",
            "category": "hospitality",
            "uniform_type": "hotel",
            "base_price_cents": 60000,
            "stock_quantity": 5,
            "reorder_level": 2,
        },
        actor_id=staff_user.id,
    )


@pytest.fixture
def inquiry_form():
    """A complete public enquiry form payload."""
    return {
        "customer_name": "Green Valley College",
        "email": "admin@greenvalley.test",
        "phone": "+91 98200 00003",
        "company": "Green Valley College",
        "business_type": "college",
        "uniform_type": "college",
        "quantity": 500,
        "requirements_description": "Blazers and trousers for the incoming batch",
    }
