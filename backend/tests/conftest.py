"""
Pytest fixtures for stockbook backend tests.

Provides an in-memory database, a clean session per test, and catalog
factories.
"""

from decimal import Decimal

import pytest

from stockbook import create_app
from stockbook.extensions import db
from stockbook.services import catalog_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_BACKOFF_BASE': 0,
        'LOW_STOCK_THRESHOLD': 10,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before each test."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()
    db.session.expunge_all()


@pytest.fixture(scope='function')
def category(db_session):
    return catalog_service.create_category("General")


@pytest.fixture(scope='function')
def make_product(db_session, category):
    """Factory: make_product(stock=5, purchase_price="6.00", retail_price="10.00", ...)."""
    def _make(
        name="Widget",
        stock=0,
        purchase_price="6.00",
        wholesale_price="8.00",
        retail_price="10.00",
        **kwargs,
    ):
        return catalog_service.create_product(
            name=name,
            category_id=category.id,
            purchase_price=purchase_price,
            wholesale_price=wholesale_price,
            retail_price=retail_price,
            current_stock=stock,
            **kwargs,
        )
    return _make


@pytest.fixture(scope='function')
def customer(db_session):
    """Customer with a 500.00 credit limit."""
    return catalog_service.create_customer(name="Warung Sari", phone="0812", credit_limit=Decimal("500.00"))


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """App on a SQLite file, so threads each get their own connection."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'stockbook.sqlite3'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        'RETRY_ATTEMPTS': 10,
        'RETRY_BACKOFF_BASE': 0.01,
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()
