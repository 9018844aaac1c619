from hashlib import sha256
from datetime import datetime, timezone
import json

GENESIS_PREVIOUS_HASH = '0'


def canonical_json(data):
    """
    Serializes the block data to its canonical form: insertion key order, no whitespace, UTF-8 text.
    :param data: A JSON-serializable payload.
    :return: string - the canonical JSON text.
    """
    return json.dumps(data, separators=(',', ':'), ensure_ascii=False)


def hash_block_data(previous_hash, timestamp, data, nonce):
    """
    Creates a SHA-256 hash of the block contents.
    :param previous_hash: The hash of the previous block.
    :param timestamp: The canonical timestamp string of the block.
    :param data: The block payload.
    :param nonce: The nonce of the block.
    :return: string - the hash in hexadecimal string format.
    """
    block_string = f'{previous_hash}{timestamp}{canonical_json(data)}{nonce}'
    return sha256(block_string.encode('utf-8')).hexdigest()


def iso_timestamp(moment=None):
    """
    Formats a point in time as ISO-8601 UTC with millisecond precision, e.g. 2026-10-19T08:00:00.000Z.
    :param moment: A datetime, current time if None. Naive datetimes are taken as UTC.
    :return: string - the canonical timestamp.
    """
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    else:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f'{moment.microsecond // 1000:03d}Z'


def meets_difficulty(block_hash, difficulty):
    return block_hash[:difficulty] == '0' * difficulty
