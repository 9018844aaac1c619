import os

from dotenv import load_dotenv

load_dotenv()

_mysql_host = os.environ.get('MYSQL_HOST', 'localhost')
_mysql_user = os.environ.get('MYSQL_USER', 'root')
_mysql_password = os.environ.get('MYSQL_PASSWORD', '')
_mysql_db = os.environ.get('MYSQL_DB', 'record_ledger')
_secret_key = os.environ.get('SECRET_KEY', 'change-me')

# memory or mysql
_store = os.environ.get('LEDGER_STORE', 'memory').lower()
_difficulty = int(os.environ.get('LEDGER_DIFFICULTY', 2))
_genesis_difficulty = int(os.environ.get('LEDGER_GENESIS_DIFFICULTY', _difficulty))
_log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
