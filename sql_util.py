from contextlib import contextmanager
from json import loads
import logging
import threading

import mysql.connector as sql
from mysql.connector import Error

from block import Block
from exceptions import BlockNotFound, DuplicateBlock, PersistenceFailure
from helper import canonical_json
from ledger_store import LedgerStore

logger = logging.getLogger(__name__)

ER_DB_CREATE_EXISTS = 1007
ER_DUP_ENTRY = 1062
ER_NO_SUCH_TABLE = 1146

UNSIZED_TYPES = ('JSON', 'BOOL', 'TEXT', 'LONGTEXT')


class Table:
    """
    Executes the MySQL queries to-
        * Check the existence of a table.
        * Create a new table.
        * Get all the rows of a table in key order.
        * Get a specific row using a search value.
        * Insert a new row into the table.
        * Delete specific rows from the table.
        * Update a row in the table with new values.
    Values are always passed as query parameters; only identifiers are formatted into the query.
    """
    def __init__(self, table_name, conn, *args):
        self.table_name = table_name
        self.conn = conn
        self.columns = args
        self.in_transaction = False
        self.create_new_table()

    @property
    def writable_columns(self):
        return [column for column in self.columns if 'AUTO_INCREMENT' not in column[3]]

    def sql_operations(self, operation, query, params=()):
        """
        Executes a MySQL query on the connection.
        :param operation: Operation to be performed on the MySQL database.
        :param query: MySQL query with %s placeholders.
        :param params: The values bound to the placeholders.
        :return: dictionary - a row as a dictionary to get data from a specific row.
                 a list of dictionaries - the rows as a list of dictionaries to get all the data from the table.
                 integer - the number of affected rows for any other operation.
        """
        cur = self.conn.cursor(buffered=True, dictionary=True)
        try:
            cur.execute(query, params)
            if operation == 'get_all':
                result = cur.fetchall()
            elif operation == 'get_one':
                result = cur.fetchone()
            else:
                if not self.in_transaction:
                    self.conn.commit()
                result = cur.rowcount
        finally:
            cur.close()
        return result

    def is_new_table(self):
        """
        Checks whether a table is new.
        :return: boolean - True: if the table is new.
                           False: if the table already exists.
        """
        cur = self.conn.cursor(buffered=True)
        try:
            cur.execute(f'SELECT 1 FROM {self.table_name} LIMIT 1;')
            return False
        except Error as e:
            if e.errno == ER_NO_SUCH_TABLE:
                return True
            raise
        finally:
            cur.close()

    @staticmethod
    def create_db(db_name, **connect_args):
        """
        Creates the database for the ledger if it does not exist yet.
        :param db_name: The name of the database.
        :param connect_args: host, user and password of the MySQL server.
        :return: boolean - True: if the database exists after the call.
                           False: if the database could not be created.
        """
        conn = sql.connect(**connect_args)
        cur = conn.cursor()
        try:
            cur.execute(f'CREATE DATABASE {db_name}')
            return True
        except Error as e:
            if e.errno == ER_DB_CREATE_EXISTS:
                return True
            logger.error('Could not create database %s: %s', db_name, e)
            return False
        finally:
            cur.close()
            conn.close()

    def create_new_table(self):
        """
        Creates a new table if a table of the same name does not exists.
        :return: None.
        """
        if self.is_new_table():
            column_headers = ', '.join([f'{column_name} {data_type} {constraint}'.strip()
                                        if data_type in UNSIZED_TYPES
                                        else f'{column_name} {data_type}({size}) {constraint}'.strip()
                                        for column_name, data_type, size, constraint in self.columns])
            query = f'CREATE TABLE {self.table_name} ({column_headers}, PRIMARY KEY ({self.columns[0][0]}));'
            self.sql_operations('create', query)
            logger.info('Created table %s', self.table_name)

    def get_all_data(self):
        """
        Get all the rows of the table ordered by the primary key.
        :return: a list of dictionaries - the rows as a list of dictionaries.
        """
        query = f'SELECT * FROM {self.table_name} ORDER BY {self.columns[0][0]};'
        return self.sql_operations('get_all', query)

    def get_one(self, search, value):
        """
        Gets the data from a specific row in the table using a search value.
        :param search: The column header used in the condition.
        :param value: The value of the column to identify the row.
        :return: dictionary - the row as a dictionary, None if no row matches.
        """
        query = f'SELECT * FROM {self.table_name} WHERE {search} = %s;'
        return self.sql_operations('get_one', query, (value,))

    def count_rows(self):
        query = f'SELECT COUNT(*) AS total FROM {self.table_name};'
        return self.sql_operations('get_one', query)['total']

    def insert_data(self, *args):
        """
        Inserts a new row into the table.
        :param args: The values of every column except auto increment ones, in column order.
        :return: integer - the number of inserted rows.
        """
        column_names = ', '.join(column[0] for column in self.writable_columns)
        placeholders = ', '.join(['%s'] * len(args))
        query = f'INSERT INTO {self.table_name} ({column_names}) VALUES ({placeholders});'
        return self.sql_operations('insert', query, args)

    def delete_one(self, search, value):
        """
        Delete specific rows from the table.
        :param search: The column header used in the condition.
        :param value: The value of the column to identify the rows to be deleted.
        :return: integer - the number of deleted rows.
        """
        query = f'DELETE FROM {self.table_name} WHERE {search} = %s;'
        return self.sql_operations('delete_one', query, (value,))

    def update_table(self, condition, *args):
        """
        Updates a row in the table with new values.
        :param condition: A tuple with column header and value to identify the row to be updated.
        :param args: Tuples of column header and new value.
        :return: integer - the number of updated rows.
        """
        columns_to_be_updated = ', '.join([f'{column_name} = %s' for column_name, _ in args])
        column, val = condition
        query = f'UPDATE {self.table_name} SET {columns_to_be_updated} WHERE {column} = %s;'
        params = tuple(value for _, value in args) + (val,)
        return self.sql_operations('update', query, params)

    @contextmanager
    def transaction(self):
        """
        Runs the enclosed writes in one MySQL transaction, committed at the end or rolled back on error.
        """
        self.conn.start_transaction()
        self.in_transaction = True
        try:
            yield self
            self.conn.commit()
        except BaseException:
            self.conn.rollback()
            raise
        finally:
            self.in_transaction = False


class MySQLLedgerStore(LedgerStore):
    """
    Keeps the blocks in a MySQL table. The auto increment id holds the append order
    and the data column holds the canonical JSON text, so hashes can be recomputed
    from the stored bytes.
    """
    def __init__(self, conn, table_name='blocks'):
        self.conn = conn
        self.conn.autocommit = True
        self._lock = threading.RLock()
        with self._translate_errors():
            self.table = Table(table_name, conn,
                               ('id', 'INT', 11, 'NOT NULL AUTO_INCREMENT'),
                               ('hash', 'VARCHAR', 64, 'NOT NULL UNIQUE'),
                               ('previous_hash', 'VARCHAR', 64, 'NOT NULL'),
                               ('nonce', 'BIGINT', 20, 'NOT NULL'),
                               ('timestamp', 'VARCHAR', 32, 'NOT NULL'),
                               ('data', 'LONGTEXT', '', 'NOT NULL'))

    @contextmanager
    def _translate_errors(self, block_hash=None):
        try:
            yield
        except Error as e:
            if e.errno == ER_DUP_ENTRY:
                raise DuplicateBlock(block_hash) from e
            raise PersistenceFailure(str(e)) from e

    @staticmethod
    def _to_block(row):
        return Block(row['timestamp'],
                     loads(row['data']),
                     row['previous_hash'],
                     int(row['nonce']),
                     row['hash'])

    def list_ordered(self):
        with self._lock, self._translate_errors():
            return [self._to_block(row) for row in self.table.get_all_data()]

    def get_by_hash(self, block_hash):
        with self._lock, self._translate_errors():
            row = self.table.get_one('hash', block_hash)
        if row is None:
            return None
        return self._to_block(row)

    def insert(self, block):
        with self._lock, self._translate_errors(block.hash):
            self.table.insert_data(block.hash,
                                   block.previous_hash,
                                   block.nonce,
                                   block.timestamp,
                                   canonical_json(block.data))

    def update(self, block_hash, block):
        with self._lock, self._translate_errors(block.hash):
            updated = self.table.update_table(('hash', block_hash),
                                              ('hash', block.hash),
                                              ('previous_hash', block.previous_hash),
                                              ('nonce', block.nonce),
                                              ('timestamp', block.timestamp),
                                              ('data', canonical_json(block.data)))
            # MySQL counts changed rows, not matched ones
            if not updated and self.table.get_one('hash', block.hash) is None:
                raise BlockNotFound(block_hash)

    def delete(self, block_hash):
        with self._lock, self._translate_errors(block_hash):
            deleted = self.table.delete_one('hash', block_hash)
        if not deleted:
            raise BlockNotFound(block_hash)

    def count(self):
        with self._lock, self._translate_errors():
            return self.table.count_rows()

    def is_connected(self):
        try:
            return self.conn.is_connected()
        except Error:
            return False

    @contextmanager
    def transaction(self):
        with self._lock:
            with self._translate_errors(), self.table.transaction():
                yield self


def connect(host, user, password, database):
    """
    Connects to the ledger database, creating it first if needed.
    :return: MySQLConnection
    """
    Table.create_db(database, host=host, user=user, password=password)
    return sql.connect(host=host, user=user, password=password, database=database)
