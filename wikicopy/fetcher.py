"""Fetch article markup by page id and turn it into displayable state.

``fetch_article`` tries the full parser render first and falls back to the
plain intro/section extract. ``load_article`` is the boundary: it turns every
failure into an ``ArticleState`` carrying a user-facing message.
"""

import logging

from wikicopy.mediawiki import TRANSPORT_ERRORS, api_get
from wikicopy.models import ArticleState, EmphasisMode, FetchedArticle
from wikicopy.normalizer import normalize
from wikicopy.resolver import resolve_article


logger = logging.getLogger(__name__)


class ContentError(Exception):
    message = 'Could not load article'

    def __init__(self, page_id):
        super().__init__(f'{self.message} (page id {page_id})')
        self.page_id = page_id


class ContentNotFound(ContentError):
    message = 'Article content not found'


class ContentTransportFailure(ContentError):
    message = 'Failed to fetch article content'


def fetch_rendered(page_id):
    data = api_get({
        'action': 'parse',
        'format': 'json',
        'formatversion': 2,
        'pageid': page_id,
        'prop': 'text|displaytitle',
    })
    if 'error' in data:
        logger.info(f'Render of {page_id} refused: {data["error"].get("code")}')
        return None

    parsed = data.get('parse') or {}
    html = parsed.get('text') or ''
    if not html.strip():
        return None
    return FetchedArticle(page_id=page_id, title=parsed.get('title', ''), html=html, source='render')


def fetch_extract(page_id):
    data = api_get({
        'action': 'query',
        'format': 'json',
        'formatversion': 2,
        'pageids': page_id,
        'prop': 'extracts',
        'exsectionformat': 'wiki',
    })
    pages = data.get('query', {}).get('pages', [])
    if not pages or pages[0].get('missing') or pages[0].get('invalid'):
        return None

    page = pages[0]
    html = page.get('extract') or ''
    if not html.strip():
        return None
    return FetchedArticle(page_id=page_id, title=page.get('title', ''), html=html, source='extract')


FETCHERS = (fetch_rendered, fetch_extract)


def fetch_article(page_id):
    failures = 0
    for fetch in FETCHERS:
        try:
            article = fetch(page_id)
        except TRANSPORT_ERRORS as e:
            logger.error(f'Could not fetch article {page_id} via {fetch.__name__}: {e}')
            failures += 1
            continue
        if article is not None:
            return article
        logger.info(f'No usable content for article {page_id} via {fetch.__name__}')

    if failures == len(FETCHERS):
        raise ContentTransportFailure(page_id)
    raise ContentNotFound(page_id)


def load_article(ref, mode=EmphasisMode.STRIP):
    if not ref.authoritative:
        ref = resolve_article(ref.title)
        if not ref.authoritative:
            logger.warning(f'Refusing to fetch {ref.title!r} by placeholder id {ref.id}')
            return ArticleState(ref=ref, title=ref.title, error=ContentNotFound.message, not_found=True)

    try:
        article = fetch_article(ref.id)
    except ContentNotFound as e:
        return ArticleState(ref=ref, title=ref.title, error=e.message, not_found=True)
    except ContentTransportFailure as e:
        return ArticleState(ref=ref, title=ref.title, error=e.message)

    document = normalize(article.html, mode)
    if not document.strip():
        return ArticleState(ref=ref, title=ref.title, error=ContentNotFound.message, not_found=True)
    return ArticleState(ref=ref, title=article.title or ref.title, document=document)
