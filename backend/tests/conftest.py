"""
OXA CRM - fixtures de test
Les tests tournent sur DemoStore (aucune base MongoDB requise).
"""

import asyncio

import pytest

from models.history import Actor
from services.persistence import DemoStore, RemoteError, demo_dataset


def _db_op(coro):
    """Run async store operation in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class FailingStore(DemoStore):
    """DemoStore dont les écritures (et éventuellement lectures) échouent"""

    def __init__(self, seed=None, fail_reads=False, message="connexion perdue"):
        super().__init__(seed)
        self.fail_reads = fail_reads
        self.message = message

    async def fetch_all(self, table, filter=None, sort=None, limit=1000):
        if self.fail_reads:
            raise RemoteError(self.message)
        return await super().fetch_all(table, filter, sort, limit)

    async def insert(self, table, row):
        raise RemoteError(self.message)

    async def update(self, table, row_id, patch, expected_revision=None):
        raise RemoteError(self.message)

    async def delete(self, table, row_id):
        raise RemoteError(self.message)


class RecordingStore(DemoStore):
    """DemoStore qui trace chaque appel"""

    def __init__(self, seed=None):
        super().__init__(seed)
        self.calls = []

    async def fetch_all(self, table, filter=None, sort=None, limit=1000):
        self.calls.append(("fetch_all", table))
        return await super().fetch_all(table, filter, sort, limit)

    async def fetch_one(self, table, row_id):
        self.calls.append(("fetch_one", table))
        return await super().fetch_one(table, row_id)

    async def insert(self, table, row):
        self.calls.append(("insert", table))
        return await super().insert(table, row)

    async def update(self, table, row_id, patch, expected_revision=None):
        self.calls.append(("update", table))
        return await super().update(table, row_id, patch, expected_revision)


@pytest.fixture
def store():
    return DemoStore(demo_dataset())


@pytest.fixture
def actor():
    return Actor(user_id="u-42", user_name="Claire Bernard")


@pytest.fixture
def api(store):
    from fastapi.testclient import TestClient
    from server import app
    from services.persistence import get_store

    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
