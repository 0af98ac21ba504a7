"""Rewrite rendered Wikipedia markup into the wikicopy output dialect.

The raw HTML is parsed once, run through an ordered list of tree rules and
serialized once. Rule order matters: each rule sees the tree exactly as the
previous one left it.

Output invariants:

- no media, script, style, inline ``style``/``on*`` attributes or reader chrome;
- every anchor is absolute, a same-document fragment, or left untouched with
  the link class;
- headings, paragraphs, lists and tables carry one canonical class;
- in ``EmphasisMode.STRIP`` there are no ``b``/``i``/``strong``/``em`` tags.

Running ``normalize`` over its own output returns it unchanged.
"""

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, Comment, NavigableString
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

from wikicopy.config import WIKIPEDIA_BASE
from wikicopy.models import EmphasisMode


CONTENT_CLASS = 'wikipedia-content'
LINK_CLASS = 'wikipedia-link'
CITATION_CLASS = 'wikipedia-citation'
PARAGRAPH_CLASS = 'wikipedia-paragraph'
LIST_CLASS = 'wikipedia-list'
NUMBERED_LIST_CLASS = 'wikipedia-list-numbered'
TABLE_CLASS = 'wikipedia-table'
BOLD_CLASS = 'wikipedia-bold'
ITALIC_CLASS = 'wikipedia-italic'

HEADING_CLASSES = {
    'h1': 'wikipedia-heading-2',
    'h2': 'wikipedia-heading-2',
    'h3': 'wikipedia-heading-3',
    'h4': 'wikipedia-heading-4',
    'h5': 'wikipedia-heading-4',
    'h6': 'wikipedia-heading-4',
}

EXTERNAL_TARGET = '_blank'
EXTERNAL_REL = 'noopener noreferrer'

MEDIA_TAGS = [
    'img', 'audio', 'video', 'figure', 'picture', 'embed', 'object',
    'source', 'track', 'svg', 'iframe',
]

# matched against each class token of a block container; inline markup such
# as sup.reference or span.vcard survives
CLUTTER_CONTAINERS = ['div', 'table', 'aside', 'figure', 'section', 'ul', 'ol']
CLUTTER_CLASS = re.compile(
    r'thumb|gallery|^float(left|right)$|^t(left|right)$|navbox|^sidebar$'
    r'|reflist|^references$|mw-references-wrap|refbegin|infobox|vcard'
)

CHROME_SELECTORS = [
    '.mw-editsection', '.mw-empty-elt', '.noprint', '.mw-jump-link',
    '.toc', '#toc', '#coordinates', '.hatnote', '.shortdescription',
    '.mbox-small', '.ambox', '.cmbox', '.fmbox', '.imbox', '.ombox', '.tmbox',
    '.portal', '.sistersitebox', '.noexcerpt', '.navbox-styles',
    '.catlinks', '.mw-authority-control',
]

UNSAFE_TAGS = ['script', 'noscript', 'style', 'link', 'meta']

CITATION_TEXT = re.compile(r'^\[(\d+)\]$')

BLOCK_TAGS = [
    'p', 'div', 'section', 'blockquote', 'ul', 'ol', 'li', 'dl', 'dt', 'dd',
    'table', 'tr', 'caption', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'pre',
]

ROOT_ID = 'wikicopy-root'


@dataclass
class _Context:
    soup: BeautifulSoup
    root: object
    mode: EmphasisMode
    base_url: str


class _SourceOrderFormatter(HTMLFormatter):
    """The "minimal" formatter without its alphabetical attribute sort."""

    def attributes(self, tag):
        if not tag.attrs:
            return []
        return list(tag.attrs.items())


FORMATTER = _SourceOrderFormatter(entity_substitution=EntitySubstitution.substitute_xml)


def _parse(html):
    # the wrapper keeps lxml from wrapping leading bare text in a <p>; a stray
    # closing tag can end it early, so rules work on the whole body
    soup = BeautifulSoup(f'<div id="{ROOT_ID}">{html}</div>', 'lxml')
    return soup, soup.body


def _unwrap_sentinel(soup):
    sentinel = soup.find('div', id=ROOT_ID)
    if sentinel is not None:
        sentinel.unwrap()


def _remove_all(tags):
    for tag in tags:
        if not tag.decomposed:
            tag.decompose()


def _has_clutter_class(tag):
    if tag.name not in CLUTTER_CONTAINERS:
        return False
    return any(CLUTTER_CLASS.search(token) for token in tag.get('class', []))


def _is_sole_content(parent, child):
    for node in parent.contents:
        if node is child:
            continue
        if isinstance(node, NavigableString) and not node.strip():
            continue
        return False
    return True


def remove_media(ctx):
    _remove_all(ctx.root.find_all(MEDIA_TAGS))
    _remove_all(ctx.root.find_all(_has_clutter_class))
    # file links that only wrapped an image
    _remove_all([link for link in ctx.root.find_all('a', href=True)
                 if not link.get_text(strip=True)])


def remove_chrome(ctx):
    for selector in CHROME_SELECTORS:
        _remove_all(ctx.root.select(selector))

    for comment in ctx.root.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    for wrapper in ctx.root.find_all('div', class_='mw-heading'):
        wrapper.unwrap()

    for container in ctx.root.find_all('div', class_='mw-parser-output'):
        container['class'] = [CONTENT_CLASS]


def _mark_external(link):
    link['class'] = [LINK_CLASS]
    link['target'] = EXTERNAL_TARGET
    link['rel'] = EXTERNAL_REL


def absolutize_links(ctx):
    for link in ctx.root.find_all('a'):
        href = link.get('href')
        if href is None:
            link.unwrap()
            continue

        classes = link.get('class', [])
        if CITATION_CLASS in classes:
            continue

        if href.startswith('/') and not href.startswith('//'):
            link['href'] = f'{ctx.base_url}{href}'
            _mark_external(link)
        elif classes == [LINK_CLASS]:
            continue
        elif 'external' in classes:
            _mark_external(link)
        else:
            link['class'] = [LINK_CLASS]


def normalize_citations(ctx):
    for link in ctx.root.find_all('a', href=True):
        if not link['href'].startswith('#'):
            continue
        match = CITATION_TEXT.match(link.get_text().strip())
        if not match:
            continue

        number = match.group(1)
        marker = ctx.soup.new_tag('sup')
        anchor = ctx.soup.new_tag('a', href=f'#citation-{number}')
        anchor['class'] = [CITATION_CLASS]
        anchor.string = f'[{number}]'
        marker.append(anchor)

        parent = link.parent
        if parent is not None and parent.name == 'sup' and _is_sole_content(parent, link):
            parent.replace_with(marker)
        else:
            link.replace_with(marker)


def classify_headings(ctx):
    for heading in ctx.root.find_all(list(HEADING_CLASSES)):
        heading['class'] = [HEADING_CLASSES[heading.name]]


def classify_blocks(ctx):
    for paragraph in ctx.root.find_all('p'):
        paragraph['class'] = [PARAGRAPH_CLASS]
    for bullet_list in ctx.root.find_all('ul'):
        bullet_list['class'] = [LIST_CLASS]
    for numbered_list in ctx.root.find_all('ol'):
        numbered_list['class'] = [LIST_CLASS, NUMBERED_LIST_CLASS]
    for table in ctx.root.find_all('table'):
        table['class'] = [TABLE_CLASS]


def apply_emphasis(ctx):
    if ctx.mode is EmphasisMode.STRIP:
        for tag in ctx.root.find_all(['b', 'i', 'strong', 'em']):
            tag.unwrap()
        return

    for tag in ctx.root.find_all(['b', 'strong']):
        tag.name = 'strong'
        tag.attrs = {'class': [BOLD_CLASS]}
    for tag in ctx.root.find_all(['i', 'em']):
        tag.name = 'em'
        tag.attrs = {'class': [ITALIC_CLASS]}


def scrub(ctx):
    _remove_all(ctx.root.find_all(UNSAFE_TAGS))
    for tag in ctx.root.find_all(True):
        for attr in list(tag.attrs):
            if attr == 'style' or attr.lower().startswith('on'):
                del tag[attr]


RULES = (
    remove_media,
    remove_chrome,
    absolutize_links,
    normalize_citations,
    classify_headings,
    classify_blocks,
    apply_emphasis,
    scrub,
)


def normalize(raw_html, mode=EmphasisMode.STRIP, base_url=WIKIPEDIA_BASE):
    if not raw_html:
        return ''
    if not isinstance(mode, EmphasisMode):
        mode = EmphasisMode.parse(mode)

    soup, root = _parse(raw_html)
    ctx = _Context(soup=soup, root=root, mode=mode, base_url=base_url.rstrip('/'))
    for rule in RULES:
        rule(ctx)

    _unwrap_sentinel(soup)
    return root.decode_contents(formatter=FORMATTER)


def to_html(doc):
    return doc


def to_plain_text(doc):
    """Visible text of a normalized document, one block per line."""
    if not doc:
        return ''

    soup, root = _parse(doc)
    _unwrap_sentinel(soup)
    for br in root.find_all('br'):
        br.replace_with('\n')
    for block in root.find_all(BLOCK_TAGS):
        block.insert_before('\n')
        block.append('\n')

    # escaped entities decode back to '<'; keep the text tag-free
    text = root.get_text().replace('<', '‹')
    lines = [re.sub(r'[ \t\xa0]+', ' ', line).strip() for line in text.splitlines()]
    return re.sub(r'\n{3,}', '\n\n', '\n'.join(lines)).strip()
