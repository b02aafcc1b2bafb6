"""
Test configuration and fixtures
"""

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from catalog_data.models import Ban, Base, City, Fuel, Media
from catalog_data.persistence.context import PersistentContext
from catalog_data.repositories.sqlalchemy_repository import Repository

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    autoflush=False, expire_on_commit=False, bind=engine
)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    # store-side constraint used to provoke conflicts
    with engine.begin() as conn:
        conn.execute(text("CREATE UNIQUE INDEX uq_fuels_name ON fuels (name)"))
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def context(db_session):
    """Persistent context over the test session"""
    return PersistentContext(db_session)


@pytest.fixture
def fuel_repo(context):
    return Repository(context, Fuel)


@pytest.fixture
def city_repo(context):
    return Repository(context, City)


@pytest.fixture
def ban_repo(context):
    return Repository(context, Ban)


@pytest.fixture
def media_repo(context):
    return Repository(context, Media)


@pytest.fixture
def seeded_fuels(fuel_repo):
    """Diesel, Petrol and Electric committed to the store"""
    fuels = [Fuel(name="Diesel"), Fuel(name="Petrol"), Fuel(name="Electric")]
    assert fuel_repo.insert_bulk(fuels) == 3
    return fuels


@pytest.fixture
def ban_with_media(ban_repo):
    """A body type with two images committed to the store"""
    ban = Ban(name="Sedan")
    ban.media = [
        Media(media_type="image/png", file_size=1024, file_name="front.png"),
        Media(media_type="image/jpeg", file_size=2048, file_name="side.jpg"),
    ]
    ban_repo.insert(ban)
    return ban
