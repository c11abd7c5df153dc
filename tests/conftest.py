"""Pytest configuration and shared fixtures for column store tests"""

import uuid
from typing import AsyncGenerator, Generator

import pytest

from colstore_connect.adapters.memory import drop_cluster
from colstore_connect.client import ColumnStoreClient
from colstore_connect.core import StoreConnection
from colstore_connect.models.config import StoreConfig
from colstore_connect.models.schema import (
    ColumnFamilyDescriptor,
    Compression,
    DataBlockEncoding,
    TableDescriptor,
)

# ==================== Configuration Fixtures ====================


@pytest.fixture
def memory_config() -> Generator[StoreConfig, None, None]:
    """Configuration for a fresh, uniquely named in-memory cluster"""
    name = f"test_{uuid.uuid4().hex[:12]}"
    yield StoreConfig(url=f"memory://{name}", scan_caching=2)
    drop_cluster(name)


@pytest.fixture
def sqlite_config(tmp_path) -> StoreConfig:
    """Configuration for a SQLite store in a temporary file"""
    return StoreConfig(url=f"sqlite:///{tmp_path / 'store.db'}", scan_caching=2)


@pytest.fixture(
    params=[
        pytest.param("memory", marks=pytest.mark.memory),
        pytest.param("sqlite", marks=pytest.mark.sqlite),
    ]
)
def store_config(request) -> StoreConfig:
    """Parametrized store configuration for every adapter"""
    return request.getfixturevalue(f"{request.param}_config")


# ==================== Client Fixtures ====================


@pytest.fixture
async def connection(store_config: StoreConfig) -> AsyncGenerator[StoreConnection, None]:
    """Open store connection with proper cleanup"""
    connection = StoreConnection(store_config)
    await connection.initialize()
    try:
        yield connection
    finally:
        await connection.dispose()


@pytest.fixture
async def client(store_config: StoreConfig) -> AsyncGenerator[ColumnStoreClient, None]:
    """Connected client with proper cleanup"""
    async with ColumnStoreClient(store_config) as client:
        yield client


@pytest.fixture
def users_descriptor() -> TableDescriptor:
    """Descriptor of the sample users table with one 'info' family"""
    return TableDescriptor(
        name="users",
        families=[
            ColumnFamilyDescriptor(
                name="info",
                data_block_encoding=DataBlockEncoding.FAST_DIFF,
                compression=Compression.SNAPPY,
            )
        ],
    )


@pytest.fixture
async def users_table(client: ColumnStoreClient, users_descriptor: TableDescriptor) -> str:
    """Create the sample users table and return its name"""
    await client.schema.create_table(users_descriptor)
    return users_descriptor.name


# ==================== Pytest Configuration ====================


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "memory: tests against the in-memory store")
    config.addinivalue_line("markers", "sqlite: tests against the SQLite store")
    config.addinivalue_line("markers", "scenario: end-to-end administrative scenarios")
