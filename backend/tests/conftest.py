"""
Pytest fixtures for back-office tests.

Provides an in-memory database, two branches with staff at every level,
products, a supplier and login helpers for the API tests.
"""

import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Branch, User, Product, Supplier
from backoffice.services.auth_service import hash_password


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'LOG_LEVEL': 'WARNING',
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
    """Fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


def make_user(username: str, role: str, branch_id=None, full_name=None) -> User:
    user = User(
        username=username,
        full_name=full_name or username.replace("_", " ").title(),
        role=role,
        branch_id=branch_id,
        password_hash=hash_password(PASSWORD),
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def branch_a(db_session):
    branch = Branch(name="Downtown", location="Main Street 1")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session):
    branch = Branch(name="Airport", location="Terminal 2")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def admin(db_session):
    """Head-office admin with no branch."""
    return make_user("admin", "admin")


@pytest.fixture(scope='function')
def manager_a(db_session, branch_a):
    return make_user("manager_a", "branch_manager", branch_a.id)


@pytest.fixture(scope='function')
def supervisor_a(db_session, branch_a):
    return make_user("supervisor_a", "supervisor", branch_a.id)


@pytest.fixture(scope='function')
def employee_a(db_session, branch_a):
    return make_user("employee_a", "employee", branch_a.id)


@pytest.fixture(scope='function')
def employee_b(db_session, branch_b):
    return make_user("employee_b", "employee", branch_b.id)


@pytest.fixture(scope='function')
def manager_b(db_session, branch_b):
    return make_user("manager_b", "branch_manager", branch_b.id)


def make_product(branch_id, name, *, code, wholesale=700, retail=1000, stock=20, threshold=5) -> Product:
    product = Product(
        code=code,
        name=name,
        wholesale_price_cents=wholesale,
        retail_price_cents=retail,
        stock=stock,
        low_stock_threshold=threshold,
        branch_id=branch_id,
    )
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, branch_a):
    """Product in branch A: wholesale 7.00, retail 10.00, 20 in stock."""
    return make_product(branch_a.id, "Olive Oil 1L", code="100001")


@pytest.fixture(scope='function')
def product_a2(db_session, branch_a):
    return make_product(branch_a.id, "Rice 5kg", code="100002", wholesale=300, retail=500, stock=10)


@pytest.fixture(scope='function')
def product_b(db_session, branch_b):
    return make_product(branch_b.id, "Green Tea", code="200001", wholesale=150, retail=250, stock=40)


@pytest.fixture(scope='function')
def supplier(db_session):
    s = Supplier(name="Acme Foods", phone="555-0100")
    db_session.add(s)
    db_session.commit()
    return s


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


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.username))


@pytest.fixture(scope='function')
def manager_headers(client, manager_a):
    return auth_headers(get_auth_token(client, manager_a.username))


@pytest.fixture(scope='function')
def employee_headers(client, employee_a):
    return auth_headers(get_auth_token(client, employee_a.username))
