from concurrent.futures import ThreadPoolExecutor
import logging
import threading

from block import Block
from exceptions import BlockNotFound, GenesisProtected, LedgerError, LedgerUninitialized
from helper import GENESIS_PREVIOUS_HASH, iso_timestamp, meets_difficulty

logger = logging.getLogger(__name__)

GENESIS_DATA = {'message': 'Genesis Block'}
DEFAULT_DIFFICULTY = 2


def validate_chain(chain, difficulty=0):
    """
    Checks the validity of an ordered sequence of blocks.
    Every block after the genesis block must carry the hash recomputed from its
    contents and must point to the stored hash of the block before it.
    :param chain: The blocks in append order.
    :param difficulty: When above zero, every checked hash must also start with that many zeros.
    :return: boolean - True: if all the blocks in the chain are valid.
                       False: at the first corrupted block.
    """
    for index in range(1, len(chain)):
        current = chain[index]
        previous = chain[index - 1]
        recalculated_hash = current.derive_hash()
        logger.debug('Block %d verification: hash %s, recalculated %s, previous %s, expected previous %s',
                     index, current.hash, recalculated_hash, current.previous_hash, previous.hash)
        if current.hash != recalculated_hash:
            logger.info('Hash mismatch detected at block %d', index)
            return False
        if current.previous_hash != previous.hash:
            logger.info('Previous hash mismatch detected at block %d', index)
            return False
        if difficulty and not meets_difficulty(current.hash, difficulty):
            logger.info('Block %d does not meet difficulty %d', index, difficulty)
            return False
    return True


class Blockchain:
    """
    Appends, deletes and verifies the blocks kept in a ledger store.

    Mutations run one at a time under a lock held for the whole read-mine-write
    sequence. Mining runs on a worker thread and a block reaches the store only
    once it is mined. Deleting a block re-links and re-mines every block after it
    in memory before anything is written, then commits the delete and all the
    updates in one store transaction, so the ledger ends up either fully repaired
    or unchanged.
    """

    def __init__(self, store, difficulty=DEFAULT_DIFFICULTY, genesis_difficulty=None, max_workers=1):
        self.store = store
        self.difficulty = difficulty
        self.genesis_difficulty = difficulty if genesis_difficulty is None else genesis_difficulty
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='miner')
        self._cancel_event = None

    def __repr__(self):
        return f'Blockchain(store={self.store!r}, difficulty={self.difficulty})'

    def _mine(self, block, difficulty, cancel_event):
        future = self._executor.submit(block.mine, difficulty, cancel_event)
        return future.result()

    def _begin_mutation(self, cancel_event):
        self._cancel_event = cancel_event or threading.Event()
        return self._cancel_event

    def cancel(self):
        """
        Cancels the mutation currently in flight, if any. The ledger is left as if it never started.
        :return: boolean - True: if a running mutation was signalled.
        """
        event = self._cancel_event
        if event is None:
            return False
        event.set()
        return True

    def shutdown(self):
        self.cancel()
        self._executor.shutdown(wait=True)

    def initialize(self):
        """
        Creates the genesis block if the ledger is empty.
        :return: Block - the genesis block.
        """
        with self._lock:
            try:
                chain = self.store.list_ordered()
                if chain:
                    return chain[0]
                logger.info('Creating genesis block...')
                cancel_event = self._begin_mutation(None)
                genesis_block = Block(iso_timestamp(), dict(GENESIS_DATA), GENESIS_PREVIOUS_HASH)
                self._mine(genesis_block, self.genesis_difficulty, cancel_event)
                self.store.insert(genesis_block)
                logger.info('Genesis block created successfully: %s', genesis_block.hash)
                return genesis_block
            finally:
                self._cancel_event = None

    def get_all_blocks(self):
        return self.store.list_ordered()

    def get_block(self, block_hash):
        return self.store.get_by_hash(block_hash)

    def get_latest_block(self):
        """
        Gets the last block in append order.
        :return: Block - the tail of the chain.
        """
        chain = self.store.list_ordered()
        if not chain:
            raise LedgerUninitialized()
        return chain[-1]

    def append(self, data, cancel_event=None):
        """
        Mines a new block holding the data on top of the current tail and saves it.
        :param data: The JSON-serializable payload of the block.
        :param cancel_event: Optional threading.Event used to cancel the mining.
        :return: Block - the new block.
        """
        with self._lock:
            try:
                cancel_event = self._begin_mutation(cancel_event)
                latest_block = self.get_latest_block()
                new_block = Block(iso_timestamp(), data, latest_block.hash)
                logger.info('Mining new block...')
                self._mine(new_block, self.difficulty, cancel_event)
                self.store.insert(new_block)
                logger.info('Block saved successfully: %s', new_block.hash)
                return new_block
            finally:
                self._cancel_event = None

    def remove_block(self, block_hash, cancel_event=None):
        """
        Deletes a block and repairs the chain after it.
        :param block_hash: The hash of the block to be deleted.
        :param cancel_event: Optional threading.Event used to cancel the re-mining.
        :return: list of Block - the re-mined blocks that followed the deleted one.
        """
        with self._lock:
            try:
                cancel_event = self._begin_mutation(cancel_event)
                chain = self.store.list_ordered()
                if not chain:
                    raise LedgerUninitialized()
                index = next((i for i, block in enumerate(chain) if block.hash == block_hash), None)
                if index is None:
                    raise BlockNotFound(block_hash)
                if index == 0:
                    raise GenesisProtected(block_hash)

                repaired = self._stage_repair(chain[:index], chain[index + 1:], cancel_event)

                with self.store.transaction():
                    self.store.delete(block_hash)
                    for original, successor in zip(chain[index + 1:], repaired):
                        self.store.update(original.hash, successor)
                logger.info('Deleted block %s, re-mined %d following block(s)', block_hash, len(repaired))
                return repaired
            finally:
                self._cancel_event = None

    def _stage_repair(self, kept, following, cancel_event):
        """
        Re-links and re-mines the blocks that followed a deleted block, keeping their timestamp and data.
        :param kept: The blocks before the deleted one.
        :param following: The blocks after the deleted one, in order.
        :return: list of Block - the re-mined successors.
        """
        last_hash = kept[-1].hash
        repaired = []
        for block in following:
            successor = self._mine(block.successor(last_hash), self.difficulty, cancel_event)
            repaired.append(successor)
            last_hash = successor.hash
        if not validate_chain(kept[-1:] + repaired, self.difficulty):
            raise LedgerError('Staged repair failed verification')
        return repaired

    def delete_block(self, block_hash, cancel_event=None):
        """
        Deletes a block and repairs the chain after it.
        :param block_hash: The hash of the block to be deleted.
        :return: boolean - True: if the block was deleted.
                           False: if no block has that hash or it is the genesis block.
        """
        try:
            self.remove_block(block_hash, cancel_event)
        except (BlockNotFound, GenesisProtected) as e:
            logger.info('Delete rejected: %s', e)
            return False
        return True

    def is_chain_valid(self):
        chain = self.store.list_ordered()
        logger.info('Verifying chain with %d blocks', len(chain))
        return validate_chain(chain)

    def search(self, term):
        """
        Finds the non-genesis blocks whose payload contains the term in any of its string values.
        :param term: The text to search for, case-insensitive.
        :return: list of Block
        """
        term = term.lower()
        return [block for block in self.store.list_ordered()[1:]
                if any(term in str(value).lower() for value in _payload_values(block.data))]


def _payload_values(data):
    if isinstance(data, dict):
        for value in data.values():
            yield from _payload_values(value)
    elif isinstance(data, list):
        for value in data:
            yield from _payload_values(value)
    elif data is not None:
        yield data
