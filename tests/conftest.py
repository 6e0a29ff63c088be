"""Shared fixtures: an in-memory SQLite schema built from the ORM models."""
import pytest

from app.database import build_session_factory
from app.logic.identity import Identity
from app.models.user import User
from tests.helpers import build_schema


@pytest.fixture
def session_factory():
    engine = build_schema()
    factory = build_session_factory(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def users(db):
    rows = {
        "seller": User(email="seller@northwind.example", role="seller", display_name="Sam Seller",
                       company="Northwind Freight", position="CEO", phone="+1-555-0100"),
        "other_seller": User(email="other@acme.example", role="seller", display_name="Olive Other",
                             company="Acme", position="Founder"),
        "buyer": User(email="buyer@capital.example", role="buyer", display_name="Bea Buyer",
                      company="Harbor Capital", position="Partner", phone="+1-555-0200"),
        "buyer2": User(email="second@fund.example", role="buyer", display_name="Ben Second",
                       company="Second Fund", position="Associate"),
        "admin": User(email="ops@dealroom.example", role="admin", display_name="Ada Admin"),
    }
    db.add_all(rows.values())
    db.commit()
    return {name: Identity(id=row.id, role=row.role) for name, row in rows.items()}
