import logging

from flask import Flask, request, jsonify

from config import _mysql_host, _mysql_user, _mysql_password, _mysql_db, _secret_key, \
    _store, _difficulty, _genesis_difficulty, _log_level
from blockchain import Blockchain, validate_chain
from exceptions import BlockNotFound, GenesisProtected, LedgerError, LedgerUninitialized
from forms import RecordForm
from ledger_store import MemoryLedgerStore

logger = logging.getLogger(__name__)


def build_blockchain():
    """
    Creates the ledger service configured in the environment and makes sure the genesis block exists.
    :return: Blockchain object
    """
    if _store == 'mysql':
        from sql_util import MySQLLedgerStore, connect
        conn = connect(_mysql_host, _mysql_user, _mysql_password, _mysql_db)
        store = MySQLLedgerStore(conn)
    else:
        store = MemoryLedgerStore()
    blockchain = Blockchain(store, difficulty=_difficulty, genesis_difficulty=_genesis_difficulty)
    blockchain.initialize()
    return blockchain


def create_app(blockchain=None):
    """
    Creates the Flask application serving the records API.
    :param blockchain: The ledger service to serve; built from the configuration if None.
    :return: Flask app
    """
    app = Flask(__name__)
    app.config['SECRET_KEY'] = _secret_key
    # block data must keep its key order to stay verifiable by clients
    app.json.sort_keys = False

    if blockchain is None:
        blockchain = build_blockchain()
    app.extensions['blockchain'] = blockchain

    @app.errorhandler(LedgerUninitialized)
    def ledger_uninitialized(e):
        logger.error('Ledger not initialized: %s', e)
        return jsonify({'error': 'Ledger not initialized'}), 503

    @app.errorhandler(LedgerError)
    def ledger_error(e):
        logger.exception('Ledger operation failed: %s', e)
        return jsonify({'error': 'Internal server error'}), 500

    @app.route('/api/health', methods=['GET'])
    def health():
        """
        Reports whether the ledger store is reachable.
        :return: Response to the request.
        """
        connected = blockchain.store.is_connected()
        return jsonify({'status': 'ok', 'database': 'connected' if connected else 'disconnected'}), 200

    @app.route('/api/records', methods=['POST'])
    def add_record():
        """
        Validates the record, mines a new block holding it and saves the block.
        :return: Response to the request.
        """
        values = request.get_json(silent=True)
        if not isinstance(values, dict):
            response = {'error': 'Missing required fields', 'fields': {}}
            return jsonify(response), 400

        form = RecordForm()
        if not form.validate_on_submit():
            response = {'error': 'Missing required fields', 'fields': form.errors}
            return jsonify(response), 400

        new_block = blockchain.append(form.record_data(values))
        response = {'message': 'Record added successfully', 'blockHash': new_block.hash}
        return jsonify(response), 200

    @app.route('/api/records', methods=['GET'])
    def get_records():
        """
        Gets every block of the chain, or only those matching the `q` search term.
        :return: Response to the request.
        """
        term = request.args.get('q', '').strip()
        if term:
            blocks = blockchain.search(term)
        else:
            blocks = blockchain.get_all_blocks()
        return jsonify([block.to_dict() for block in blocks]), 200

    @app.route('/api/records/<block_hash>', methods=['GET'])
    def get_record(block_hash):
        block = blockchain.get_block(block_hash)
        if block is None:
            return jsonify({'error': 'Record not found'}), 404
        return jsonify(block.to_dict()), 200

    @app.route('/api/records/<block_hash>', methods=['DELETE'])
    def delete_record(block_hash):
        """
        Deletes a block and re-mines the blocks after it.
        :return: Response to the request.
        """
        try:
            blockchain.remove_block(block_hash)
        except BlockNotFound:
            return jsonify({'error': 'Record not found'}), 404
        except GenesisProtected:
            return jsonify({'error': 'Cannot delete genesis block'}), 400
        return jsonify({'message': 'Record deleted successfully'}), 200

    @app.route('/api/verify', methods=['GET'])
    def verify():
        """
        Verifies the whole chain.
        :return: Response to the request.
        """
        chain = blockchain.get_all_blocks()
        is_valid = validate_chain(chain)
        return jsonify({'isValid': is_valid, 'blockCount': len(chain)}), 200

    return app


if __name__ == '__main__':
    from argparse import ArgumentParser
    parser = ArgumentParser()
    parser.add_argument('-p', '--port', type=int, default=5000)
    port = parser.parse_args().port
    logging.basicConfig(level=_log_level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    create_app().run(host='localhost', port=port, debug=True, threaded=True)
