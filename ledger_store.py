from abc import ABC, abstractmethod
from contextlib import contextmanager
from copy import deepcopy
import threading

from block import Block
from exceptions import BlockNotFound, DuplicateBlock


class LedgerStore(ABC):
    """
    Ordered, durable storage of blocks used by the Blockchain service.
    Blocks are kept in append order; the hash is unique.
    """

    @abstractmethod
    def list_ordered(self):
        """
        Gets every block in append order, as one consistent snapshot.
        :return: list of Block
        """

    @abstractmethod
    def get_by_hash(self, block_hash):
        """
        :return: Block or None.
        """

    @abstractmethod
    def insert(self, block):
        """
        Appends a block. Raises DuplicateBlock if the hash already exists.
        """

    @abstractmethod
    def update(self, block_hash, block):
        """
        Replaces the fields of the block stored under block_hash, keeping its position.
        Raises BlockNotFound if no block has that hash.
        """

    @abstractmethod
    def delete(self, block_hash):
        """
        Removes a block. Raises BlockNotFound if no block has that hash.
        """

    def count(self):
        return len(self.list_ordered())

    def is_connected(self):
        return True

    @contextmanager
    def transaction(self):
        """
        Groups writes so they are committed together or not at all.
        Stores that cannot roll back simply run the writes.
        """
        yield self


class MemoryLedgerStore(LedgerStore):
    """
    Keeps the blocks in a list of persisted-layout dictionaries.
    Every operation holds the store lock, and so does a whole transaction,
    so readers never see a half-applied transaction.
    """
    def __init__(self, blocks=None):
        self._lock = threading.RLock()
        self._records = []
        for block in blocks or []:
            self.insert(block)

    def _index_of(self, block_hash):
        for index, record in enumerate(self._records):
            if record['hash'] == block_hash:
                return index
        return None

    def list_ordered(self):
        with self._lock:
            return [Block.from_dict(deepcopy(record)) for record in self._records]

    def get_by_hash(self, block_hash):
        with self._lock:
            index = self._index_of(block_hash)
            if index is None:
                return None
            return Block.from_dict(deepcopy(self._records[index]))

    def insert(self, block):
        with self._lock:
            if self._index_of(block.hash) is not None:
                raise DuplicateBlock(block.hash)
            self._records.append(deepcopy(block.to_dict()))

    def update(self, block_hash, block):
        with self._lock:
            index = self._index_of(block_hash)
            if index is None:
                raise BlockNotFound(block_hash)
            if block.hash != block_hash and self._index_of(block.hash) is not None:
                raise DuplicateBlock(block.hash)
            self._records[index] = deepcopy(block.to_dict())

    def delete(self, block_hash):
        with self._lock:
            index = self._index_of(block_hash)
            if index is None:
                raise BlockNotFound(block_hash)
            del self._records[index]

    def count(self):
        with self._lock:
            return len(self._records)

    @contextmanager
    def transaction(self):
        with self._lock:
            snapshot = deepcopy(self._records)
            try:
                yield self
            except BaseException:
                self._records = snapshot
                raise
