"""
Tests for the API client, run against the Flask app through its test client.
"""

import pytest
import requests

from client import LedgerClient

BASE_URL = 'http://ledger.test'


class FlaskResponse:
    def __init__(self, response):
        self.status_code = response.status_code
        self._json = response.get_json()

    def json(self):
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} Error')


class FlaskSession:
    """
    Stands in for requests.Session, routing calls to the Flask test client.
    """
    def __init__(self, http):
        self.http = http

    def _path(self, url):
        assert url.startswith(BASE_URL)
        return url[len(BASE_URL):]

    def get(self, url, timeout=None):
        return FlaskResponse(self.http.get(self._path(url)))

    def post(self, url, json=None, timeout=None):
        return FlaskResponse(self.http.post(self._path(url), json=json))

    def delete(self, url, timeout=None):
        return FlaskResponse(self.http.delete(self._path(url)))


@pytest.fixture
def client(http):
    return LedgerClient(BASE_URL + '/', session=FlaskSession(http))


def test_health(client):
    assert client.health()['status'] == 'ok'


def test_add_and_fetch_record(client):
    block_hash = client.add_record('Ada Lovelace', 'S-1', 'MAT-364', 'A')
    block = client.record(block_hash)
    assert block['data'] == {'studentName': 'Ada Lovelace', 'studentId': 'S-1',
                             'courseDetails': 'MAT-364', 'grades': 'A'}
    assert client.record('f' * 64) is None


def test_records_skip_genesis(client):
    client.add_record('Ada Lovelace', 'S-1', 'MAT-364', 'A')
    assert len(client.records()) == 1
    genesis = client.records(include_genesis=True)[0]
    assert genesis['previousHash'] == '0'


def test_search_by_name_or_id(client):
    client.add_record('Ada Lovelace', 'S-1', 'MAT-364', 'A')
    client.add_record('Alan Turing', 'T-2', 'MAT-364', 'B')
    assert [b['data']['studentId'] for b in client.search('LOVELACE')] == ['S-1']
    assert [b['data']['studentId'] for b in client.search('t-2')] == ['T-2']
    assert len(client.search('  ')) == 2


def test_delete_and_verify(client):
    first = client.add_record('Ada Lovelace', 'S-1', 'MAT-364', 'A')
    client.add_record('Alan Turing', 'T-2', 'MAT-364', 'B')
    assert client.delete_record(first) is True
    assert client.delete_record(first) is False
    genesis = client.records(include_genesis=True)[0]
    assert client.delete_record(genesis['hash']) is False
    assert client.verify() == (True, 2)


def test_invalid_record_raises(client):
    with pytest.raises(requests.HTTPError):
        client.add_record('', 'S-1', 'MAT-364', 'A')
