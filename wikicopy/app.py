import logging
import os
import re
from logging.handlers import RotatingFileHandler
from urllib.parse import quote_plus, urlencode

from flask import Flask, Response, jsonify, redirect, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from markupsafe import escape

from wikicopy import config
from wikicopy.fetcher import load_article
from wikicopy.mediawiki import article_url, title_slug
from wikicopy.models import ArticleRef, EmphasisMode
from wikicopy.normalizer import to_html, to_plain_text
from wikicopy.resolver import resolve, resolve_article
from wikicopy.thumbnails import fetch_thumbnail, is_safe_path, thumb_path, upstream_url


DEFAULTS = {
    'skin': 'light',
    'emphasis': EmphasisMode.parse(config.DEFAULT_EMPHASIS).value,
}


DOCTYPE = '<!DOCTYPE html>'


META = '<meta charset="utf-8">\n<meta name="viewport" content="width=device-width, initial-scale=1">'


SKIN_CSS = {
    'light': 'body { background: #ffffff; color: #202122; } a { color: #3366cc; }',
    'dark': 'body { background: #1a1a1a; color: #e0e0e0; } a { color: #6db3f2; }',
}


CONTENT_CSS = '''body { font-family: sans-serif; max-width: 60em; margin: 0 auto; padding: 1em; }
.wikipedia-heading-2 { font-family: serif; font-size: 1.5em; border-bottom: 1px solid #a2a9b1; }
.wikipedia-heading-3 { font-size: 1.2em; }
.wikipedia-heading-4 { font-size: 1em; }
.wikipedia-paragraph { line-height: 1.6; }
.wikipedia-list { line-height: 1.6; }
.wikipedia-table { border-collapse: collapse; }
.wikipedia-table td, .wikipedia-table th { border: 1px solid #a2a9b1; padding: 0.2em 0.4em; }
.wikipedia-citation { font-size: 0.8em; text-decoration: none; }
.wikipedia-bold { font-weight: bold; }
.wikipedia-italic { font-style: italic; }
.search-result img { float: left; margin-right: 0.5em; }
.search-result { clear: both; min-height: 3em; }
textarea { width: 100%; height: 12em; }'''


HEADER = '''<header>
<h1><a href="/{home_query}">wikicopy</a></h1>
<form action="/search" method="get">
<input type="search" name="q" size="30" placeholder="Search Wikipedia articles...">
{hidden_prefs}
<input type="submit" value="Search">
</form>
<small><a href="{skin_toggle_url}">{skin_toggle_text}</a> |
<a href="{emphasis_toggle_url}">{emphasis_toggle_text}</a> |
<a href="/about{home_query}">About</a>
</small>
</header>
<hr>'''


FOOTER = '''<hr>
<footer>
<small>
Content sourced from <a href="{wikipedia_url}" target="_blank" rel="noopener noreferrer">Wikipedia</a> under
<a href="https://creativecommons.org/licenses/by-sa/4.0/">CC BY-SA 4.0</a>.
</small>
</footer>'''


HOME_TEMPLATE = '''{doctype}
<html>
<head>
{meta}
<title>wikicopy - Import Wikipedia content</title>
<style>
{skin_css}
{content_css}
</style>
</head>
<body>
<center>
<h1>wikicopy</h1>
<p>Search and import Wikipedia content with proper formatting.</p>
<form action="/search" method="get">
<input type="search" name="q" size="40" placeholder="Search Wikipedia articles..." autofocus>
{hidden_prefs}
<input type="submit" value="Search">
</form>
<p><small>
<a href="/?{skin_toggle_params}">{skin_toggle_text}</a> |
<a href="/?{emphasis_toggle_params}">{emphasis_toggle_text}</a> |
<a href="/about{home_query}">What is wikicopy?</a>
</small></p>
</center>
</body>
</html>'''


PAGE_TEMPLATE = '''{doctype}
<html>
<head>
{meta}
<title>{title_text} - wikicopy</title>
<style>
{skin_css}
{content_css}
</style>
</head>
<body>
{header}
{content}
{footer}
</body>
</html>'''


ERROR_TEMPLATE = '''{doctype}
<html>
<head>
{meta}
<title>Error - wikicopy</title>
</head>
<body>
<h1>Error</h1>
<p>{message}</p>
<p><a href="/">Home</a></p>
</body>
</html>'''


ABOUT_CONTENT = '''
<h2>What is wikicopy?</h2>
<p>wikicopy lets you search <a href="https://wikipedia.org">Wikipedia</a>, pick an article and take
a cleaned-up copy of it into another document.</p>

<p>Images, infoboxes, navigation boxes, edit links and reference lists are removed. Links point back
to Wikipedia, citation markers are kept as plain <code>[n]</code> anchors, and every heading, paragraph,
list and table carries a fixed class so the result can be styled consistently wherever it lands.</p>

<h3>Copying</h3>
<p>Every article page offers the content as plain text and as HTML. Bold and italic text is
flattened by default; switch to "Emphasis: Keep" to carry it over.</p>
'''


if not os.path.exists(config.LOG_DIR):
    os.makedirs(config.LOG_DIR)

if not os.path.exists(config.CACHE_DIR):
    os.makedirs(config.CACHE_DIR)

file_handler = RotatingFileHandler(
    f'{config.LOG_DIR}/access.log',
    maxBytes=1024*1024,
    backupCount=5
)
file_handler.setFormatter(logging.Formatter('%(asctime)s - %(message)s'))
file_handler.setLevel(logging.INFO)
access_logger = logging.getLogger('wikicopy.access')
access_logger.setLevel(logging.INFO)
access_logger.addHandler(file_handler)

app = Flask(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2 per second"],
    enabled=config.RATELIMIT_ENABLED
)
limiter.init_app(app)


def get_prefs():
    skin = request.args.get('skin', DEFAULTS['skin'])
    emphasis = request.args.get('emphasis', DEFAULTS['emphasis'])
    skin, emphasis = validate_prefs(skin, emphasis)
    return {'skin': skin, 'emphasis': emphasis}


def validate_prefs(skin, emphasis):
    if skin not in ('light', 'dark'):
        skin = DEFAULTS['skin']
    if emphasis not in ('strip', 'preserve'):
        emphasis = DEFAULTS['emphasis']
    return skin, emphasis


def build_prefs_string(prefs):
    non_default = {k: v for k, v in prefs.items() if v != DEFAULTS.get(k)}
    if not non_default:
        return ''
    return '&'.join(f'{k}={v}' for k, v in non_default.items())


def build_hidden_prefs(prefs):
    return '\n'.join(
        f'<input type="hidden" name="{k}" value="{v}">'
        for k, v in prefs.items() if v != DEFAULTS.get(k)
    )


def get_skin_toggle(prefs):
    new_prefs = prefs.copy()
    if prefs['skin'] == 'light':
        new_prefs['skin'] = 'dark'
        text = 'Dark Mode'
    else:
        new_prefs['skin'] = 'light'
        text = 'Light Mode'
    return build_prefs_string(new_prefs), text


def get_emphasis_toggle(prefs):
    new_prefs = prefs.copy()
    if prefs['emphasis'] == 'strip':
        new_prefs['emphasis'] = 'preserve'
        text = 'Emphasis: Strip'
    else:
        new_prefs['emphasis'] = 'strip'
        text = 'Emphasis: Keep'
    return build_prefs_string(new_prefs), text


def build_url(base_path, prefs_params, extra_params=''):
    params = prefs_params
    if extra_params:
        if params:
            params = f'{params}&{extra_params}'
        else:
            params = extra_params
    if params:
        return f'{base_path}?{params}'
    return base_path


def render_header(base_path, prefs, extra_params=''):
    prefs_string = build_prefs_string(prefs)
    skin_toggle_params, skin_toggle_text = get_skin_toggle(prefs)
    emphasis_toggle_params, emphasis_toggle_text = get_emphasis_toggle(prefs)

    home_query = f'?{prefs_string}' if prefs_string else ''

    return HEADER.format(
        home_query=home_query,
        hidden_prefs=build_hidden_prefs(prefs),
        skin_toggle_url=build_url(base_path, skin_toggle_params, extra_params),
        skin_toggle_text=skin_toggle_text,
        emphasis_toggle_url=build_url(base_path, emphasis_toggle_params, extra_params),
        emphasis_toggle_text=emphasis_toggle_text,
    )


def render_page(title_text, base_path, prefs, content, wikipedia_url, extra_params=''):
    return PAGE_TEMPLATE.format(
        doctype=DOCTYPE,
        meta=META,
        title_text=title_text,
        skin_css=SKIN_CSS.get(prefs['skin'], SKIN_CSS['light']),
        content_css=CONTENT_CSS,
        header=render_header(base_path, prefs, extra_params),
        content=content,
        footer=FOOTER.format(wikipedia_url=wikipedia_url),
    )


def render_error(message):
    return ERROR_TEMPLATE.format(
        doctype=DOCTYPE,
        meta=META,
        message=escape(message)
    )


def render_candidate(candidate, prefs_string):
    if candidate.authoritative:
        url = build_url(f'/article/{candidate.id}', prefs_string, urlencode({'title': candidate.title}))
    else:
        url = build_url(f'/wiki/{title_slug(candidate.title)}', prefs_string)

    thumb = ''
    local_path = thumb_path(candidate.thumbnail_url)
    if local_path:
        thumb = f'<img src="/thumb/{local_path}" alt="" width="{config.THUMB_MAX_WIDTH // 2}">'

    # snippets are already reduced to text plus <strong>/<em>
    snippet = candidate.snippet or 'No description available.'
    return (f'<li class="search-result">{thumb}<a href="{escape(url)}">{escape(candidate.title)}</a>'
            f'<br><small>{snippet}</small></li>')


@app.route('/')
def home():
    prefs = get_prefs()
    prefs_string = build_prefs_string(prefs)
    skin_toggle_params, skin_toggle_text = get_skin_toggle(prefs)
    emphasis_toggle_params, emphasis_toggle_text = get_emphasis_toggle(prefs)

    return HOME_TEMPLATE.format(
        doctype=DOCTYPE,
        meta=META,
        skin_css=SKIN_CSS.get(prefs['skin'], SKIN_CSS['light']),
        content_css=CONTENT_CSS,
        hidden_prefs=build_hidden_prefs(prefs),
        skin_toggle_params=skin_toggle_params,
        skin_toggle_text=skin_toggle_text,
        emphasis_toggle_params=emphasis_toggle_params,
        emphasis_toggle_text=emphasis_toggle_text,
        home_query=f'?{prefs_string}' if prefs_string else '',
    )


@app.route('/search')
def search():
    prefs = get_prefs()
    prefs_string = build_prefs_string(prefs)
    query = request.args.get('q', '').strip()

    if not query:
        return redirect(f'/?{prefs_string}' if prefs_string else '/')

    if len(query) > config.MAX_QUERY_LENGTH:
        query = query[:config.MAX_QUERY_LENGTH]

    candidates = resolve(query)

    if len(query) < config.MIN_QUERY_LENGTH:
        content = f'<p>Type at least {config.MIN_QUERY_LENGTH} characters to search.</p>'
    elif not candidates:
        content = f'<p>No articles found for "{escape(query)}"</p>'
    else:
        content = f'<p>Search results for <b>{escape(query)}</b></p>\n<ul>\n'
        content += '\n'.join(render_candidate(c, prefs_string) for c in candidates)
        content += '\n</ul>'

    wikipedia_url = f'{config.WIKIPEDIA_BASE}/wiki/Special:Search?search={quote_plus(query)}'
    return render_page(
        f'Search: {escape(query)}', '/search', prefs, content, wikipedia_url,
        extra_params=f'q={quote_plus(query)}',
    )


@app.route('/api/search')
def api_search():
    query = request.args.get('q', '')[:config.MAX_QUERY_LENGTH]
    candidates = resolve(query)
    return jsonify({
        'query': query,
        'results': [c.to_dict() for c in candidates],
    })


@app.route('/wiki/<path:title>')
def wiki(title):
    if not re.match(r'^[\w\s\-.,()\'\"&:;!/#+%@]+$', title, re.UNICODE):
        return Response(render_error('Invalid article title'), mimetype='text/html'), 400

    if len(title) > config.MAX_QUERY_LENGTH:
        return Response(render_error('Article title too long'), mimetype='text/html'), 400

    prefs_string = build_prefs_string(get_prefs())
    ref = resolve_article(title.replace('_', ' '))
    if not ref.authoritative:
        return Response(render_error('Article content not found'), mimetype='text/html'), 404

    return redirect(build_url(f'/article/{ref.id}', prefs_string, urlencode({'title': ref.title})))


def _load(page_id, prefs):
    ref = ArticleRef(title=request.args.get('title', ''), id=page_id)
    return load_article(ref, EmphasisMode.parse(prefs['emphasis']))


def _error_status(state):
    return 404 if state.not_found else 502


@app.route('/article/<int:page_id>')
def article(page_id):
    prefs = get_prefs()
    state = _load(page_id, prefs)
    if not state.ok:
        return Response(render_error(state.error), mimetype='text/html'), _error_status(state)

    prefs_string = build_prefs_string(prefs)
    title_text = state.title or f'Article {page_id}'
    wikipedia_url = article_url(title_text)
    title_param = urlencode({'title': title_text})
    text_url = build_url(f'/article/{page_id}/text', prefs_string, title_param)
    html_url = build_url(f'/article/{page_id}/html', prefs_string, title_param)

    content = f'<h1>{escape(title_text)}</h1>\n'
    content += (
        f'<p><a href="{escape(wikipedia_url)}" target="_blank" rel="noopener noreferrer">View on Wikipedia</a> | '
        f'<a href="{escape(text_url)}">Copy Text</a> | '
        f'<a href="{escape(html_url)}">Copy HTML</a></p>\n'
    )
    content += f'<div class="wikipedia-content">\n{to_html(state.document)}\n</div>\n'
    content += '<h2>Copy</h2>\n'
    content += f'<h3>Text</h3>\n<textarea readonly>{escape(to_plain_text(state.document))}</textarea>\n'
    content += f'<h3>HTML</h3>\n<textarea readonly>{escape(to_html(state.document))}</textarea>\n'

    return render_page(
        escape(title_text), f'/article/{page_id}', prefs, content, wikipedia_url,
        extra_params=title_param,
    )


@app.route('/article/<int:page_id>/text')
def article_text(page_id):
    state = _load(page_id, get_prefs())
    if not state.ok:
        return Response(state.error, mimetype='text/plain', status=_error_status(state))
    return Response(to_plain_text(state.document), mimetype='text/plain')


@app.route('/article/<int:page_id>/html')
def article_html(page_id):
    state = _load(page_id, get_prefs())
    if not state.ok:
        return Response(state.error, mimetype='text/plain', status=_error_status(state))
    return Response(to_html(state.document), mimetype='text/plain')


@app.route('/thumb/<path:image_path>')
@limiter.limit("10 per second")
def proxy_thumbnail(image_path):
    if not is_safe_path(image_path):
        return Response(b'', status=400)

    png_data = fetch_thumbnail(upstream_url(image_path), use_cache=not app.debug)
    if png_data:
        return Response(png_data, mimetype='image/png')
    else:
        return Response(b'', status=404)


@app.route('/about')
def about():
    prefs = get_prefs()
    return render_page('What is wikicopy?', '/about', prefs, ABOUT_CONTENT, config.WIKIPEDIA_BASE)


@app.after_request
def log_response(response):
    access_logger.info(f'{request.remote_addr} - {request.method} {request.path} - {response.status_code}')
    return response


@app.after_request
def add_security_headers(response):
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    return response


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.environ.get('WIKICOPY_PORT', '8080')), debug=config.DEBUG)
