"""
Pytest fixtures for tablepos backend tests.

Provides an in-memory application, per-test table cleanup, factories for
staff users, products and tables, and bearer-token helpers.
"""

import pytest

from tablepos import create_app
from tablepos.components import get_components
from tablepos.decorators import issue_actor_token
from tablepos.extensions import db
from tablepos.models import Category, DiningTable, Product, SystemSetting, User
from tablepos.services.rate_limit_service import SlidingWindowRateLimiter
from tablepos.services.token_service import OneTimeTokenStore
from tablepos.services.transition_policy import PermissiveTransitionPolicy


TEST_CONFIG = {
    'TESTING': True,
    'SECRET_KEY': 'test-secret',
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BACKGROUND_WORKERS_ENABLED': False,
    'DEFAULT_TAX_RATE': '11.0',
    'TRANSACTION_TIMEOUT_SECONDS': 0,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(dict(TEST_CONFIG))

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
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


@pytest.fixture(scope='function', autouse=True)
def components(app, db_session):
    """Fresh in-process state (limiter windows, tokens, policy) for each test."""
    components = get_components(app)
    components.rate_limiter = SlidingWindowRateLimiter()
    components.token_store = OneTimeTokenStore()
    components.transition_policy = PermissiveTransitionPolicy()
    app.config['CSRF_REQUIRE_TOKEN'] = False
    return components


@pytest.fixture(scope='function')
def make_user(db_session):
    counter = {'n': 0}

    def _make_user(role='server', username=None, is_active=True):
        counter['n'] += 1
        user = User(
            username=username or f"{role}_{counter['n']}",
            first_name=role.capitalize(),
            last_name=str(counter['n']),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Mains", sort_order=1)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def make_product(db_session, category):
    def _make_product(name, price, is_available=True):
        product = Product(
            category_id=category.id,
            name=name,
            price=price,
            is_available=is_available,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make_product


@pytest.fixture(scope='function')
def make_table(db_session):
    def _make_table(number, qr_code=None, location="Main Floor"):
        table = DiningTable(
            table_number=number,
            seating_capacity=4,
            location=location,
            qr_code=qr_code,
        )
        db_session.add(table)
        db_session.commit()
        return table

    return _make_table


@pytest.fixture(scope='function')
def tax_rate(db_session):
    def _set(value):
        db_session.add(SystemSetting(setting_key='tax_rate', setting_value=str(value)))
        db_session.commit()

    return _set


@pytest.fixture(scope='function')
def menu(make_product):
    """The two-dish menu used by the checkout scenario (prices in minor units)."""
    return {
        'nasi_goreng': make_product("Nasi Goreng", 150000),
        'es_teh': make_product("Es Teh", 85000),
    }


@pytest.fixture(scope='function')
def auth_headers(app):
    """Helper to create Authorization headers for a staff user."""
    def _headers(user) -> dict:
        token = issue_actor_token(user.id, user.role)
        return {'Authorization': f'Bearer {token}'}

    return _headers
