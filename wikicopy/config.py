import os

from dotenv import load_dotenv


load_dotenv()


def _env_bool(name, default):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


WIKIPEDIA_BASE = os.environ.get('WIKICOPY_WIKIPEDIA_BASE', 'https://en.wikipedia.org').rstrip('/')
API_URL = f'{WIKIPEDIA_BASE}/w/api.php'


MAX_QUERY_LENGTH = 500
MIN_QUERY_LENGTH = 2
MAX_SEARCH_RESULTS = 8
SNIPPET_MAX_CHARS = 150
THUMB_MAX_WIDTH = 100
MAX_THUMB_BYTES = 5 * 1024 * 1024


SEARCH_BACKEND = os.environ.get('WIKICOPY_SEARCH_BACKEND', 'prefixsearch')
SEARCH_LIMIT = min(max(int(os.environ.get('WIKICOPY_SEARCH_LIMIT', '5')), 1), MAX_SEARCH_RESULTS)
SEARCH_DEBOUNCE_SECONDS = int(os.environ.get('WIKICOPY_SEARCH_DEBOUNCE_MS', '300')) / 1000.0
DEFAULT_EMPHASIS = os.environ.get('WIKICOPY_EMPHASIS', 'strip')
REQUEST_TIMEOUT = float(os.environ.get('WIKICOPY_REQUEST_TIMEOUT', '10'))


LOG_DIR = os.environ.get('WIKICOPY_LOG_DIR', '/var/log/wikicopy')
CACHE_DIR = os.environ.get('WIKICOPY_CACHE_DIR', '/var/cache/wikicopy/thumbs')
RATELIMIT_ENABLED = _env_bool('WIKICOPY_RATELIMIT_ENABLED', 'true')
DEBUG = _env_bool('DEBUG', 'false')


HEADERS = {
    'User-Agent': 'wikicopy/1.0 (Wikipedia search and content importer)'
}
