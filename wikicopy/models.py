"""Value types shared by the resolver, the fetcher and the web layer.

All of them are transient: built for one interaction and replaced wholesale
by the next one, never mutated in place.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional


class EmphasisMode(enum.Enum):
    STRIP = 'strip'
    PRESERVE = 'preserve'

    @classmethod
    def parse(cls, value, default=None):
        """Map a pref string onto a mode, falling back to *default* (or STRIP)."""
        try:
            return cls(value)
        except ValueError:
            return default or cls.STRIP


@dataclass(frozen=True)
class ArticleRef:
    title: str
    id: int
    # False when id is a locally computed placeholder rather than a real page id
    authoritative: bool = True


@dataclass(frozen=True)
class SearchCandidate:
    id: int
    title: str
    snippet: str
    thumbnail_url: Optional[str] = None

    @property
    def authoritative(self):
        return self.id > 0

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'snippet': self.snippet,
            'thumbnail_url': self.thumbnail_url,
        }


@dataclass(frozen=True)
class FetchedArticle:
    page_id: int
    title: str
    html: str
    source: str


@dataclass(frozen=True)
class SearchState:
    query: str = ''
    candidates: tuple = field(default_factory=tuple)


@dataclass(frozen=True)
class ArticleState:
    """Outcome of loading one article: a document or an error, never both."""

    ref: ArticleRef
    title: str = ''
    document: Optional[str] = None
    error: Optional[str] = None
    not_found: bool = False

    @property
    def ok(self):
        return self.document is not None
