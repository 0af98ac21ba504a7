"""Shared pytest fixtures.

The environment is pinned before any ``wikicopy`` module is imported: config
values are read once at import time, and the app creates its log and cache
directories on import.
"""

import os
import tempfile
from unittest.mock import MagicMock

import pytest
import requests

_TMP = tempfile.mkdtemp(prefix='wikicopy-tests-')
os.environ['WIKICOPY_LOG_DIR'] = os.path.join(_TMP, 'log')
os.environ['WIKICOPY_CACHE_DIR'] = os.path.join(_TMP, 'cache')
os.environ['WIKICOPY_RATELIMIT_ENABLED'] = 'false'
os.environ['WIKICOPY_WIKIPEDIA_BASE'] = 'https://en.wikipedia.org'
os.environ['WIKICOPY_SEARCH_BACKEND'] = 'prefixsearch'
os.environ['WIKICOPY_SEARCH_LIMIT'] = '5'
os.environ['WIKICOPY_EMPHASIS'] = 'strip'


def _make_response(payload=None, status_code=200, content=b'', headers=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    resp.content = content
    resp.headers = headers or {}
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f'{status_code} error')
    return resp


@pytest.fixture
def make_response():
    """Factory for fake ``requests`` responses."""
    return _make_response


@pytest.fixture
def client():
    from wikicopy.app import app

    app.config['TESTING'] = True
    with app.test_client() as test_client:
        yield test_client
