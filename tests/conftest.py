import pytest

from app import create_app
from blockchain import Blockchain
from ledger_store import MemoryLedgerStore


@pytest.fixture
def blockchain():
    ledger = Blockchain(MemoryLedgerStore(), difficulty=1)
    ledger.initialize()
    yield ledger
    ledger.shutdown()


@pytest.fixture
def app(blockchain):
    app = create_app(blockchain)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def http(app):
    return app.test_client()
