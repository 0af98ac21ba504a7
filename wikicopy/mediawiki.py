from urllib.parse import quote

import requests

from wikicopy import config


# anything that means the upstream answer could not be fetched or read
TRANSPORT_ERRORS = (requests.RequestException, ValueError, KeyError, TypeError, AttributeError)


def api_get(params):
    resp = requests.get(
        config.API_URL,
        params=params,
        headers=config.HEADERS,
        timeout=config.REQUEST_TIMEOUT
    )
    resp.raise_for_status()
    return resp.json()


def title_slug(title):
    return quote(title.replace(' ', '_'), safe='')


def article_url(title):
    return f'{config.WIKIPEDIA_BASE}/wiki/{title_slug(title)}'
