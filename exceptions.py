class LedgerError(Exception):
    """
    Base class of every error raised by the ledger.
    """


class LedgerUninitialized(LedgerError):
    """
    Raised when a mutation is attempted before the genesis block exists.
    """
    def __init__(self, message='Ledger not initialized: no genesis block found'):
        super().__init__(message)


class BlockNotFound(LedgerError):
    def __init__(self, block_hash):
        super().__init__(f'Block not found: {block_hash}')
        self.block_hash = block_hash


class GenesisProtected(LedgerError):
    def __init__(self, block_hash):
        super().__init__(f'Genesis block cannot be deleted: {block_hash}')
        self.block_hash = block_hash


class MiningCancelled(LedgerError):
    """
    Raised from the mining loop when its cancel event is set.
    """


class PersistenceFailure(LedgerError):
    """
    Raised when the ledger store fails to read or write. The original error is chained.
    """


class DuplicateBlock(PersistenceFailure):
    def __init__(self, block_hash):
        super().__init__(f'Block already exists: {block_hash}')
        self.block_hash = block_hash
