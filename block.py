from datetime import datetime
import logging

from exceptions import MiningCancelled
from helper import hash_block_data, iso_timestamp, meets_difficulty

logger = logging.getLogger(__name__)


class Block:
    """
    One ledger entry, linked to its predecessor through previous_hash.
    A block is mined right after construction; once mined, any change to its
    timestamp, data or previous_hash requires a new block to be mined.
    """
    def __init__(self, timestamp, data, previous_hash='', nonce=0, block_hash=None):
        if isinstance(timestamp, datetime):
            timestamp = iso_timestamp(timestamp)
        self.timestamp = timestamp
        self.data = data
        self.previous_hash = previous_hash
        self.nonce = nonce
        self.hash = block_hash or self.derive_hash()

    def __repr__(self):
        return f'Hash: {self.hash}\nPrevious: {self.previous_hash}\nNonce: {self.nonce}\n' \
               f'Time: {self.timestamp}\nData: {self.data}\n'

    def __eq__(self, other):
        if not isinstance(other, Block):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(self.hash)

    def derive_hash(self):
        """
        Computes the hash from the block contents, ignoring the stored hash.
        :return: string - the hash in hexadecimal string format.
        """
        return hash_block_data(self.previous_hash, self.timestamp, self.data, self.nonce)

    def mine(self, difficulty, cancel_event=None):
        """
        Increments the nonce until the hash starts with `difficulty` zeros.
        :param difficulty: The number of leading zero hex characters required.
        :param cancel_event: Optional threading.Event; the search stops once it is set.
        :return: Block - the mined block itself.
        """
        if difficulty < 0:
            raise ValueError(f'Difficulty must be non-negative, got {difficulty}')
        self.hash = self.derive_hash()
        while not meets_difficulty(self.hash, difficulty):
            if cancel_event is not None and cancel_event.is_set():
                raise MiningCancelled(f'Mining cancelled at nonce {self.nonce}')
            self.nonce += 1
            self.hash = self.derive_hash()
        logger.info('Block mined: %s (nonce %d)', self.hash, self.nonce)
        return self

    def successor(self, previous_hash):
        """
        Creates an un-mined copy of the block linked to a new predecessor.
        The timestamp and data are kept; the nonce starts over.
        :param previous_hash: The hash of the new predecessor.
        :return: Block - the new block.
        """
        return Block(self.timestamp, self.data, previous_hash)

    def to_dict(self):
        return {
            'timestamp': self.timestamp,
            'data': self.data,
            'previousHash': self.previous_hash,
            'hash': self.hash,
            'nonce': self.nonce,
        }

    @classmethod
    def from_dict(cls, record):
        """
        Builds a block from its persisted layout, keeping the stored hash as is.
        :param record: A dictionary with timestamp, data, previousHash, hash and nonce.
        :return: Block
        """
        return cls(record['timestamp'],
                   record['data'],
                   record['previousHash'],
                   int(record['nonce']),
                   record['hash'])
