"""
Test configuration and shared fixtures for the table query test suite.
Provides in-memory config and data source databases and a FastAPI test client.
"""

import os
import tempfile

# Request logs written outside the request session land in a throwaway database
_TEST_DB_DIR = tempfile.mkdtemp(prefix="tablequery-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TEST_DB_DIR, 'config.db')}")
os.environ.setdefault("DATASOURCE_URL", f"sqlite:///{os.path.join(_TEST_DB_DIR, 'datasource.db')}")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.app import create_app  # noqa: E402
from app.core.database import Base, get_db, get_ds_db  # noqa: E402
from app.datasource.dao import DatasourceDAO  # noqa: E402
from app.datasource.service import DatasourceService  # noqa: E402
from app.tables.dao import TableConfigDAO  # noqa: E402
from app.tables.service import TableConfigService  # noqa: E402


DATASOURCE_DDL = [
    """
    CREATE TABLE Account (
        Id TEXT PRIMARY KEY,
        Name TEXT NOT NULL,
        Industry TEXT,
        AnnualRevenue REAL,
        Active BOOLEAN
    )
    """,
    """
    CREATE TABLE contact (
        contact_id INTEGER PRIMARY KEY,
        first_name TEXT,
        last_name TEXT,
        account_id TEXT
    )
    """,
    "CREATE VIEW tech_account AS SELECT Id, Name FROM Account WHERE Industry = 'Technology'",
]

DATASOURCE_ROWS = [
    "INSERT INTO Account VALUES ('001A', 'Acme', 'Technology', 1500000.0, 1)",
    "INSERT INTO Account VALUES ('001B', 'Globex', 'Energy', 820000.0, 1)",
    "INSERT INTO Account VALUES ('001C', 'Initech', 'Technology', 90000.0, 0)",
    "INSERT INTO Account VALUES ('001D', 'O''Brien Supply', NULL, NULL, 1)",
    "INSERT INTO contact VALUES (1, 'Ada', 'Lovelace', '001A')",
    "INSERT INTO contact VALUES (2, 'Grace', 'Hopper', '001A')",
    "INSERT INTO contact VALUES (3, 'Alan', 'Turing', '001B')",
]


# ===== DATABASE SETUP =====


@pytest.fixture(scope="session")
def config_engine():
    """Create in-memory SQLite engine for config database"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    from app.tables.models import TableConfigRecord  # noqa: F401
    from app.logging.models import Log  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(scope="session")
def ds_engine():
    """Create in-memory SQLite engine for the data source, seeded with accounts and contacts"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.begin() as conn:
        for statement in DATASOURCE_DDL + DATASOURCE_ROWS:
            conn.exec_driver_sql(statement)
    return engine


@pytest.fixture(scope="function")
def config_db_session(config_engine):
    """Create a database session for config database"""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=config_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        # Clean up all data after each test
        Base.metadata.drop_all(bind=config_engine)
        Base.metadata.create_all(bind=config_engine)


@pytest.fixture(scope="function")
def ds_db_session(ds_engine):
    """Create a read-mostly session for the data source database"""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=ds_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ===== SERVICES =====


@pytest.fixture
def datasource_service(ds_db_session):
    return DatasourceService(DatasourceDAO(ds_db_session))


@pytest.fixture
def config_service(config_db_session):
    return TableConfigService(TableConfigDAO(config_db_session))


# ===== API CLIENT =====


@pytest.fixture
def client(config_db_session, ds_db_session):
    """Create FastAPI test client with database overrides"""
    app = create_app()

    def override_get_db():
        try:
            yield config_db_session
        finally:
            pass

    def override_get_ds_db():
        try:
            yield ds_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ds_db] = override_get_ds_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ===== SAMPLE PAYLOADS =====


@pytest.fixture
def account_config_payload():
    """A saved-config payload in the persisted camelCase shape"""
    return {
        "schemaVersion": 2,
        "objectApiName": "Account",
        "fields": [
            {"fieldName": "Name", "label": "Account Name", "visible": True, "sortable": True},
            {"fieldName": "Industry", "label": "Industry", "visible": True, "sortable": True},
            {"fieldName": "AnnualRevenue", "label": "Revenue", "visible": False, "sortable": True},
        ],
        "whereClause": "",
        "limit": 100,
        "defaultSortField": "Name",
        "defaultSortDirection": "asc",
        "displayOptions": {"showRecordCount": True, "showSearch": False, "showRefresh": True},
        "viewState": {"fieldVisibilityFilter": "all"},
    }
