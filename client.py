import requests


class LedgerClient:
    """
    Talks to the records API of a running ledger server.
    """
    def __init__(self, base_url, session=None, timeout=30):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def _url(self, path):
        return f'{self.base_url}{path}'

    def health(self):
        response = self.session.get(self._url('/api/health'), timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def add_record(self, student_name, student_id, course_details, grades):
        """
        Submits a new record. The server mines the block before answering.
        :return: string - the hash of the new block.
        """
        record = {'studentName': student_name,
                  'studentId': student_id,
                  'courseDetails': course_details,
                  'grades': grades}
        response = self.session.post(self._url('/api/records'), json=record, timeout=self.timeout)
        response.raise_for_status()
        return response.json()['blockHash']

    def records(self, include_genesis=False):
        """
        Gets the blocks of the chain in order.
        :param include_genesis: Whether to keep the genesis block at the head of the list.
        :return: a list of dictionaries - the blocks.
        """
        response = self.session.get(self._url('/api/records'), timeout=self.timeout)
        response.raise_for_status()
        blocks = response.json()
        return blocks if include_genesis else blocks[1:]

    def record(self, block_hash):
        response = self.session.get(self._url(f'/api/records/{block_hash}'), timeout=self.timeout)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def search(self, term):
        """
        Finds the records whose student ID or student name contains the term, ignoring case.
        :return: a list of dictionaries - the matching blocks.
        """
        term = term.strip().lower()
        if not term:
            return self.records()
        return [block for block in self.records()
                if term in str(block['data'].get('studentId', '')).lower()
                or term in str(block['data'].get('studentName', '')).lower()]

    def delete_record(self, block_hash):
        """
        Deletes a record; the server re-mines the records after it.
        :return: boolean - True: if the record was deleted.
                           False: if it does not exist or is the genesis block.
        """
        response = self.session.delete(self._url(f'/api/records/{block_hash}'), timeout=self.timeout)
        if response.status_code in (400, 404):
            return False
        response.raise_for_status()
        return True

    def verify(self):
        """
        :return: tuple - (is_valid, block_count) of the server's chain.
        """
        response = self.session.get(self._url('/api/verify'), timeout=self.timeout)
        response.raise_for_status()
        result = response.json()
        return result['isValid'], result['blockCount']
