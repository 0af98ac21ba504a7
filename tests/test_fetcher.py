"""Tests for wikicopy.fetcher: the render/extract fallback chain and load_article."""

from __future__ import annotations

from unittest.mock import patch

import pytest
import requests

from wikicopy.fetcher import (
    ContentNotFound,
    ContentTransportFailure,
    fetch_article,
    load_article,
)
from wikicopy.models import ArticleRef, EmphasisMode
from wikicopy.resolver import placeholder_id

RENDER_OK = {'parse': {
    'title': 'Foo',
    'pageid': 42,
    'text': '<div class="mw-parser-output"><p>Hello <b>world</b></p></div>',
}}
RENDER_MISSING = {'error': {'code': 'nosuchpageid', 'info': 'There is no page with ID 42.'}}
RENDER_EMPTY = {'parse': {'title': 'Foo', 'pageid': 42, 'text': '   '}}
EXTRACT_OK = {'query': {'pages': [{'pageid': 42, 'title': 'Foo', 'extract': '<p>Short <i>intro</i>.</p>'}]}}
EXTRACT_MISSING = {'query': {'pages': [{'pageid': 42, 'missing': True}]}}

DOWN = requests.ConnectionError('down')


# ---------------------------------------------------------------------------
# fetch_article
# ---------------------------------------------------------------------------


class TestFetchArticle:

    def test_render_preferred(self) -> None:
        with patch('wikicopy.fetcher.api_get', return_value=RENDER_OK) as mock_get:
            article = fetch_article(42)
        assert article.source == 'render'
        assert article.title == 'Foo'
        assert 'mw-parser-output' in article.html
        assert mock_get.call_count == 1
        assert mock_get.call_args.args[0]['action'] == 'parse'

    @pytest.mark.parametrize('render', [RENDER_MISSING, RENDER_EMPTY, DOWN])
    def test_falls_back_to_extract(self, render) -> None:
        with patch('wikicopy.fetcher.api_get', side_effect=[render, EXTRACT_OK]) as mock_get:
            article = fetch_article(42)
        assert article.source == 'extract'
        assert article.html == '<p>Short <i>intro</i>.</p>'
        assert mock_get.call_args.args[0]['prop'] == 'extracts'

    def test_both_transport_failures_raise_transport(self) -> None:
        with patch('wikicopy.fetcher.api_get', side_effect=[DOWN, requests.Timeout('slow')]):
            with pytest.raises(ContentTransportFailure):
                fetch_article(42)

    @pytest.mark.parametrize('render', [RENDER_MISSING, DOWN])
    def test_no_content_raises_not_found(self, render) -> None:
        with patch('wikicopy.fetcher.api_get', side_effect=[render, EXTRACT_MISSING]):
            with pytest.raises(ContentNotFound) as excinfo:
                fetch_article(42)
        assert excinfo.value.page_id == 42

    def test_no_retries(self) -> None:
        with patch('wikicopy.fetcher.api_get', side_effect=[DOWN, DOWN]) as mock_get:
            with pytest.raises(ContentTransportFailure):
                fetch_article(42)
        assert mock_get.call_count == 2


# ---------------------------------------------------------------------------
# load_article
# ---------------------------------------------------------------------------


class TestLoadArticle:

    REF = ArticleRef(title='Foo', id=42)

    def test_document_is_normalized(self) -> None:
        with patch('wikicopy.fetcher.api_get', return_value=RENDER_OK):
            state = load_article(self.REF)
        assert state.ok
        assert state.error is None
        assert state.title == 'Foo'
        assert state.document == (
            '<div class="wikipedia-content"><p class="wikipedia-paragraph">Hello world</p></div>'
        )

    def test_preserve_mode_passed_through(self) -> None:
        with patch('wikicopy.fetcher.api_get', return_value=RENDER_OK):
            state = load_article(self.REF, EmphasisMode.PRESERVE)
        assert '<strong class="wikipedia-bold">world</strong>' in state.document

    def test_not_found_message(self) -> None:
        with patch('wikicopy.fetcher.api_get', side_effect=[RENDER_MISSING, EXTRACT_MISSING]):
            state = load_article(self.REF)
        assert not state.ok
        assert state.document is None
        assert state.not_found
        assert state.error == 'Article content not found'

    def test_transport_message(self) -> None:
        with patch('wikicopy.fetcher.api_get', side_effect=[DOWN, DOWN]):
            state = load_article(self.REF)
        assert not state.ok
        assert not state.not_found
        assert state.error == 'Failed to fetch article content'

    def test_content_removed_entirely_is_not_found(self) -> None:
        render = {'parse': {'title': 'Foo', 'text': '<div class="navbox">only chrome</div>'}}
        with patch('wikicopy.fetcher.api_get', return_value=render):
            state = load_article(self.REF)
        assert state.not_found

    def test_placeholder_is_re_resolved(self) -> None:
        placeholder = ArticleRef(title='Foo', id=placeholder_id('Foo'), authoritative=False)
        with patch('wikicopy.fetcher.resolve_article', return_value=self.REF) as mock_resolve, \
                patch('wikicopy.fetcher.api_get', return_value=RENDER_OK) as mock_get:
            state = load_article(placeholder)
        mock_resolve.assert_called_once_with('Foo')
        assert state.ok
        assert state.ref.id == 42
        assert mock_get.call_args.args[0]['pageid'] == 42

    def test_unresolvable_placeholder_never_fetches(self) -> None:
        placeholder = ArticleRef(title='Foo', id=placeholder_id('Foo'), authoritative=False)
        with patch('wikicopy.fetcher.resolve_article', return_value=placeholder), \
                patch('wikicopy.fetcher.api_get') as mock_get:
            state = load_article(placeholder)
        mock_get.assert_not_called()
        assert state.not_found
        assert state.error == 'Article content not found'
