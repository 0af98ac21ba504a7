"""Search Wikipedia and resolve titles to page ids.

``resolve`` never raises: transport and parse failures are logged and reported
as "no matches".
"""

import hashlib
import logging
import re

from bs4 import BeautifulSoup, Comment, NavigableString

from wikicopy import config
from wikicopy.mediawiki import TRANSPORT_ERRORS, api_get
from wikicopy.models import ArticleRef, SearchCandidate


logger = logging.getLogger(__name__)


CITATION_MARKER = re.compile(r'\[\d+\]')
INLINE_KEEP = {'b': 'strong', 'strong': 'strong', 'i': 'em', 'em': 'em'}
ELLIPSIS = '...'


def sanitize_snippet(html, max_chars=config.SNIPPET_MAX_CHARS):
    """Reduce an extract to plain text plus ``<strong>``/``<em>``, capped at *max_chars*.

    The cap counts visible characters, so markup is never cut mid-tag.
    """
    if not html:
        return ''

    soup = BeautifulSoup(f'<div id="snippet">{html}</div>', 'lxml')
    root = soup.find('div', id='snippet')

    for tag in root.find_all(['script', 'style']):
        tag.decompose()
    for comment in root.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for tag in root.find_all(True):
        if tag.name in INLINE_KEEP:
            tag.name = INLINE_KEEP[tag.name]
            tag.attrs = {}
        else:
            tag.unwrap()
    root.smooth()

    for node in root.find_all(string=True):
        cleaned = re.sub(r'\s+', ' ', CITATION_MARKER.sub('', node))
        if cleaned != node:
            node.replace_with(cleaned)

    truncated = len(root.get_text().strip()) > max_chars
    if truncated:
        remaining = max_chars
        cut = False
        for node in list(root.descendants):
            if not isinstance(node, NavigableString):
                continue
            text = str(node)
            if cut:
                node.extract()
            elif len(text) > remaining:
                node.replace_with(text[:remaining].rstrip())
                cut = True
            else:
                remaining -= len(text)
        for tag in root.find_all(True):
            if not tag.decomposed and not tag.get_text():
                tag.decompose()

    result = root.decode_contents().strip()
    return f'{result}{ELLIPSIS}' if truncated else result


def placeholder_id(title):
    """Deterministic stand-in id for a title whose real page id is unknown.

    Always negative, so it can never be mistaken for a real page id.
    """
    digest = hashlib.md5(title.encode('utf-8')).hexdigest()
    return -(int(digest[:12], 16) + 1)


def lookup_page_id(title):
    data = api_get({
        'action': 'query',
        'format': 'json',
        'formatversion': 2,
        'titles': title,
        'redirects': 1,
    })
    pages = data.get('query', {}).get('pages', [])
    if not pages:
        return None, title
    page = pages[0]
    if page.get('missing') or page.get('invalid') or not page.get('pageid'):
        return None, title
    return int(page['pageid']), page.get('title', title)


def resolve_article(title):
    try:
        page_id, canonical = lookup_page_id(title)
    except TRANSPORT_ERRORS as e:
        logger.warning(f'Page id lookup failed for {title!r}: {e}')
        page_id, canonical = None, title

    if page_id:
        return ArticleRef(title=canonical, id=page_id)

    logger.warning(f'No page id for {title!r}, using placeholder id')
    return ArticleRef(title=title, id=placeholder_id(title), authoritative=False)


def _prefix_search(query, limit):
    data = api_get({
        'action': 'query',
        'format': 'json',
        'formatversion': 2,
        'generator': 'prefixsearch',
        'gpssearch': query,
        'gpslimit': limit,
        'prop': 'extracts|pageimages',
        'exintro': 1,
        'exchars': 200,
        'exlimit': 'max',
        'piprop': 'thumbnail',
        'pithumbsize': config.THUMB_MAX_WIDTH,
    })
    pages = data.get('query', {}).get('pages', [])
    pages = sorted(pages, key=lambda page: page.get('index', 0))

    results = []
    for page in pages:
        thumbnail = page.get('thumbnail') or {}
        results.append({
            'title': page['title'],
            'snippet': page.get('extract', ''),
            'id': page.get('pageid'),
            'thumbnail': thumbnail.get('source'),
        })
    return results


def _open_search(query, limit):
    data = api_get({
        'action': 'opensearch',
        'search': query,
        'limit': limit,
        'format': 'json'
    })

    # opensearch returns: [query, [titles], [descriptions], [urls]]
    titles = data[1] if len(data) > 1 else []
    descriptions = data[2] if len(data) > 2 else []

    results = []
    for i, title in enumerate(titles):
        results.append({
            'title': title,
            'snippet': descriptions[i] if i < len(descriptions) else '',
            'id': None,
            'thumbnail': None,
        })
    return results


BACKENDS = {
    'prefixsearch': _prefix_search,
    'opensearch': _open_search,
}


def resolve(query, limit=None, backend=None):
    query = (query or '').strip()
    if len(query) < config.MIN_QUERY_LENGTH:
        return []
    query = query[:config.MAX_QUERY_LENGTH]

    limit = min(max(limit or config.SEARCH_LIMIT, 1), config.MAX_SEARCH_RESULTS)
    backend = backend or config.SEARCH_BACKEND
    search = BACKENDS.get(backend)
    if search is None:
        logger.warning(f'Unknown search backend {backend!r}, using prefixsearch')
        search = _prefix_search

    try:
        raw = search(query, limit)
    except TRANSPORT_ERRORS as e:
        logger.warning(f'Wikipedia search failed: {e}')
        return []

    candidates = []
    for result in raw[:limit]:
        page_id = result['id']
        if page_id is None:
            page_id = resolve_article(result['title']).id
        candidates.append(SearchCandidate(
            id=int(page_id),
            title=result['title'],
            snippet=sanitize_snippet(result['snippet']),
            thumbnail_url=result['thumbnail'],
        ))
    return candidates
