"""
Tests for the MySQL ledger store against a fake connection.
"""

import pytest
from mysql.connector import errors

from blockchain import Blockchain, validate_chain
from exceptions import BlockNotFound, DuplicateBlock, PersistenceFailure
from helper import canonical_json
from ledger_store import MemoryLedgerStore
from sql_util import MySQLLedgerStore


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.rowcount = 0
        self._rows = []

    def execute(self, query, params=()):
        params = tuple(params)
        self.conn.executed.append((query, params))
        if query.startswith('SELECT 1 FROM') and self.conn.missing_table:
            self.conn.missing_table = False
            raise errors.ProgrammingError(msg='Table does not exist', errno=1146)
        if self.conn.error is not None:
            error, self.conn.error = self.conn.error, None
            raise error
        if 'COUNT(*)' in query:
            self._rows = [{'total': len(self.conn.rows)}]
        elif query.startswith('SELECT') and 'WHERE hash' in query:
            self._rows = [row for row in self.conn.rows if row['hash'] == params[0]]
        elif query.startswith('SELECT'):
            self._rows = list(self.conn.rows)
        self.rowcount = self.conn.rowcount

    def fetchall(self):
        return self._rows

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def close(self):
        pass


class FakeConnection:
    def __init__(self, rows=None, missing_table=False):
        self.rows = rows or []
        self.missing_table = missing_table
        self.executed = []
        self.rowcount = 1
        self.error = None
        self.autocommit = False
        self.commits = 0
        self.rollbacks = 0
        self.transactions = 0

    def cursor(self, buffered=False, dictionary=False):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def start_transaction(self):
        self.transactions += 1

    def is_connected(self):
        return True

    def queries(self, prefix):
        return [query for query in self.executed if query[0].startswith(prefix)]


def rows_from(blocks):
    return [{'id': n + 1,
             'hash': block.hash,
             'previous_hash': block.previous_hash,
             'nonce': block.nonce,
             'timestamp': block.timestamp,
             'data': canonical_json(block.data)} for n, block in enumerate(blocks)]


@pytest.fixture
def chain():
    blockchain = Blockchain(MemoryLedgerStore(), difficulty=1)
    blockchain.initialize()
    blockchain.append({'studentName': 'Ada Lovelace', 'studentId': 'S-1'})
    blockchain.append({'studentName': 'Alan Turing', 'studentId': 'S-2'})
    yield blockchain.get_all_blocks()
    blockchain.shutdown()


def test_creates_missing_table():
    conn = FakeConnection(missing_table=True)
    MySQLLedgerStore(conn)
    (query, _), = conn.queries('CREATE TABLE')
    assert query == ('CREATE TABLE blocks (id INT(11) NOT NULL AUTO_INCREMENT, '
                     'hash VARCHAR(64) NOT NULL UNIQUE, previous_hash VARCHAR(64) NOT NULL, '
                     'nonce BIGINT(20) NOT NULL, timestamp VARCHAR(32) NOT NULL, '
                     'data LONGTEXT NOT NULL, PRIMARY KEY (id));')
    assert conn.autocommit is True


def test_existing_table_is_not_recreated():
    conn = FakeConnection()
    MySQLLedgerStore(conn)
    assert conn.queries('CREATE TABLE') == []


def test_list_ordered_rebuilds_valid_chain(chain):
    conn = FakeConnection(rows_from(chain))
    blocks = MySQLLedgerStore(conn).list_ordered()
    assert blocks == chain
    assert validate_chain(blocks)
    assert conn.queries('SELECT * FROM blocks ORDER BY id')


def test_insert_uses_parameters(chain):
    conn = FakeConnection()
    MySQLLedgerStore(conn).insert(chain[1])
    (query, params), = conn.queries('INSERT')
    assert query == 'INSERT INTO blocks (hash, previous_hash, nonce, timestamp, data) VALUES (%s, %s, %s, %s, %s);'
    assert params == (chain[1].hash, chain[1].previous_hash, chain[1].nonce, chain[1].timestamp,
                      '{"studentName":"Ada Lovelace","studentId":"S-1"}')
    assert conn.commits == 1


def test_get_by_hash(chain):
    store = MySQLLedgerStore(FakeConnection(rows_from(chain)))
    assert store.get_by_hash(chain[2].hash) == chain[2]
    assert store.get_by_hash('f' * 64) is None
    assert store.count() == 3


def test_duplicate_hash_rejected(chain):
    conn = FakeConnection()
    store = MySQLLedgerStore(conn)
    conn.error = errors.IntegrityError(msg='Duplicate entry', errno=1062)
    with pytest.raises(DuplicateBlock):
        store.insert(chain[1])


def test_backend_errors_become_persistence_failures():
    conn = FakeConnection()
    store = MySQLLedgerStore(conn)
    conn.error = errors.OperationalError(msg='Lost connection', errno=2013)
    with pytest.raises(PersistenceFailure) as excinfo:
        store.list_ordered()
    assert isinstance(excinfo.value.__cause__, errors.OperationalError)


def test_delete_unknown_hash():
    conn = FakeConnection()
    store = MySQLLedgerStore(conn)
    conn.rowcount = 0
    with pytest.raises(BlockNotFound):
        store.delete('f' * 64)


def test_update_unknown_hash(chain):
    conn = FakeConnection()
    store = MySQLLedgerStore(conn)
    conn.rowcount = 0
    with pytest.raises(BlockNotFound):
        store.update('f' * 64, chain[1])


def test_update_sets_every_column(chain):
    conn = FakeConnection(rows_from(chain))
    MySQLLedgerStore(conn).update(chain[1].hash, chain[2])
    (query, params), = conn.queries('UPDATE')
    assert query == ('UPDATE blocks SET hash = %s, previous_hash = %s, nonce = %s, timestamp = %s, '
                     'data = %s WHERE hash = %s;')
    assert params[0] == chain[2].hash
    assert params[-1] == chain[1].hash


def test_transaction_commits_once(chain):
    conn = FakeConnection(rows_from(chain))
    store = MySQLLedgerStore(conn)
    with store.transaction():
        store.delete(chain[1].hash)
        store.update(chain[2].hash, chain[2])
    assert conn.transactions == 1
    assert conn.commits == 1
    assert conn.rollbacks == 0


def test_transaction_rolls_back(chain):
    conn = FakeConnection(rows_from(chain))
    store = MySQLLedgerStore(conn)
    with pytest.raises(PersistenceFailure):
        with store.transaction():
            store.delete(chain[1].hash)
            conn.error = errors.OperationalError(msg='Lock wait timeout', errno=1205)
            store.update(chain[2].hash, chain[2])
    assert conn.commits == 0
    assert conn.rollbacks == 1
    assert store.table.in_transaction is False
