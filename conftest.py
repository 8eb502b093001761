"""Shared fixtures: every test gets its own in-memory database."""

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

import models  # noqa: F401  registers every table on SQLModel.metadata
from models.coordinate import Coordinate, GeofenceDefinition, GeofenceSource
from services.persistence import GeofenceStore, LocalStore


@pytest.fixture
def engine():
    # One shared connection so worker threads see the same in-memory database
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def local_store(engine):
    return LocalStore(engine)


@pytest.fixture
def store(local_store):
    return GeofenceStore(local_store)


@pytest.fixture
def hq_fence():
    return GeofenceDefinition(
        name="Head Office",
        center=Coordinate(latitude=38.9931538759034, longitude=-76.9428334513501),
        radius_meters=250.0,
        source=GeofenceSource.BRANCH,
    )


@pytest.fixture
def home_premise():
    return GeofenceDefinition(
        name="Home Office",
        center=Coordinate(latitude=38.9000, longitude=-77.0300),
        radius_meters=100.0,
        source=GeofenceSource.CUSTOM,
    )
