import pytest

from sim_gateway.db import Store
from sim_gateway.services.reconciler import MessageHandler


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def submit(self, event, data):
        self.events.append((event, data))
        return True


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "gateway.db"


@pytest.fixture
async def store(db_path):
    store = await Store(db_path).open()
    yield store
    await store.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def handler(store, notifier):
    return MessageHandler(store, notifier, log_raw_messages=True)
