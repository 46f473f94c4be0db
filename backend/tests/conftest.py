"""
Shared test fixtures for BuildOps tests

Provides database setup, client creation and a standard stock scenario
"""
import os

# Keep the application engine and audit log away from real infrastructure
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUDIT_LOG_FILE", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db.base import Base
from app.db.session import get_db
from tests.factories import reset_sequences


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite defers BEGIN on its own, which breaks SAVEPOINT handling.
# Let SQLAlchemy emit BEGIN so nested transactions behave as on PostgreSQL.
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    # Import all models to ensure they're registered with Base
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    create_tables(engine)
    reset_sequences()

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()
        drop_tables(engine)


@pytest.fixture
def db(db_session):
    """Alias for db_session"""
    return db_session


@pytest.fixture
def client(db_session):
    """Create a test client with database override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def widget_stock(db_session):
    """
    Widget needs 2 x PART-A per unit. PART-A is stocked at two locations:
    LOC-1 holds 6 and LOC-2 holds 8.
    """
    from tests.factories import (
        create_test_bom_entry,
        create_test_component,
        create_test_inventory_record,
        create_test_location,
    )

    part_a = create_test_component(db_session, part_number="PART-A", name="Part A")
    loc1 = create_test_location(db_session, code="LOC-1")
    loc2 = create_test_location(db_session, code="LOC-2")
    rec1 = create_test_inventory_record(db_session, component=part_a, location=loc1, quantity=6)
    rec2 = create_test_inventory_record(db_session, component=part_a, location=loc2, quantity=8)
    create_test_bom_entry(db_session, product="Widget", component=part_a, quantity_per_unit=2)
    db_session.commit()
    return {"part_a": part_a, "loc1": loc1, "loc2": loc2, "rec1": rec1, "rec2": rec2}


def pytest_configure(config):
    config.addinivalue_line("markers", "api: endpoint contract tests")
    config.addinivalue_line("markers", "integration: multi-step lifecycle scenarios")
