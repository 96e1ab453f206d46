"""Catalogue search across Google Books and Open Library.

``CatalogSearch.search_by_title`` queries both sources, merges results that
refer to the same work, broadens the search when too few candidates are
found, and finally reconciles near-duplicate titles so that every group of
similar titles shares one merged set of metadata.

Results are keyed by a merge key, the title with case, punctuation and
repeated whitespace normalised away. Two keys are considered the same work
when they are equal, when one contains the other, or when both are longer
than ``PREFIX_MATCH_LENGTH`` and share that many leading characters.
"""

import asyncio
import logging
import re
from dataclasses import replace
from typing import Iterable, Optional

from .errors import SearchFailedError, SourceUnavailableError, ValidationError
from .models import (
    DEFAULT_AUTHOR,
    DEFAULT_TITLE,
    PLACEHOLDER_COVER,
    BookApiResult,
)

logger = logging.getLogger(__name__)

# Results requested from each source per title query
MAX_RESULTS_PER_SOURCE = 15
# Below this many candidates the search is broadened
MIN_CANDIDATES = 3
# Title words re-queried when broadening
MAX_TITLE_VARIATIONS = 3
# Words must be longer than this to be used for broadening
SIGNIFICANT_WORD_LENGTH = 3
# Leading characters two long titles must share to be considered similar
PREFIX_MATCH_LENGTH = 5
# Upper bound on candidates once author queries are involved
MAX_CANDIDATES = 10
# Results requested per author query
AUTHOR_QUERY_RESULTS = 5

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


def normalize_title(title: Optional[str]) -> str:
    """Return the merge key for *title*.

    Examples
    --------
    >>> normalize_title("  Dom   Casmurro! ")
    'dom casmurro'
    >>> normalize_title("O Cortiço: Romance")
    'o cortiço romance'
    """
    if not title:
        return ""
    text = _PUNCTUATION.sub(" ", title.casefold())
    return _WHITESPACE.sub(" ", text).strip()


def titles_similar(a: str, b: str, prefix_length: int = PREFIX_MATCH_LENGTH) -> bool:
    """Return ``True`` if two merge keys refer to the same work.

    Parameters
    ----------
    a, b : str
        Normalised titles, as returned by ``normalize_title``.
    prefix_length : int, optional
        Shared prefix length required for long titles.

    Examples
    --------
    >>> titles_similar("dom casmurro", "dom casmurro edição especial")
    True
    >>> titles_similar("memorias postumas", "memorias de um sargento")
    True
    >>> titles_similar("iracema", "senhora")
    False
    """
    if not a or not b:
        return False
    if a == b or a in b or b in a:
        return True
    return (
        len(a) > prefix_length
        and len(b) > prefix_length
        and a[:prefix_length] == b[:prefix_length]
    )


def union_genres(*genre_lists: Iterable[str]) -> list[str]:
    """Union genre lists, keeping first-seen order and dropping duplicates."""
    merged: list[str] = []
    for genres in genre_lists:
        for genre in genres or []:
            if genre and genre not in merged:
                merged.append(genre)
    return merged


def _is_missing(value) -> bool:
    return value is None or value == "" or value == 0 or value == []


def _has_cover(url: Optional[str]) -> bool:
    return bool(url) and url != PLACEHOLDER_COVER


def merge_missing(target: BookApiResult, source: BookApiResult) -> BookApiResult:
    """Fill the empty fields of *target* from *source*, in place.

    Values already present on *target* are never overwritten; genres are
    unioned.

    Returns
    -------
    BookApiResult
        *target*, for chaining.
    """
    if _is_missing(target.title) and not _is_missing(source.title):
        target.title = source.title
    if _is_missing(target.author) and not _is_missing(source.author):
        target.author = source.author
    if not _has_cover(target.cover_url) and _has_cover(source.cover_url):
        target.cover_url = source.cover_url
    if _is_missing(target.page_count) and not _is_missing(source.page_count):
        target.page_count = source.page_count
    if _is_missing(target.synopsis) and not _is_missing(source.synopsis):
        target.synopsis = source.synopsis
    target.genres = union_genres(target.genres, source.genres)
    return target


def merge_group(members: list[BookApiResult]) -> BookApiResult:
    """Compute the merged record for a group of similar candidates.

    Takes the longest title, the first author, the first real cover, the
    union of genres, the first page count and the longest synopsis.
    """
    titles = [m.title for m in members if not _is_missing(m.title)]
    synopses = [m.synopsis for m in members if not _is_missing(m.synopsis)]
    return BookApiResult(
        title=max(titles, key=len) if titles else None,
        author=next((m.author for m in members if not _is_missing(m.author)), None),
        cover_url=next((m.cover_url for m in members if _has_cover(m.cover_url)), None),
        genres=union_genres(*(m.genres for m in members)),
        page_count=next(
            (m.page_count for m in members if not _is_missing(m.page_count)), None
        ),
        synopsis=max(synopses, key=len) if synopses else None,
    )


def group_similar(keys: list[str]) -> list[list[int]]:
    """Partition *keys* into transitive similarity groups.

    Uses union-find, so if A is similar to B and B to C then A, B and C end
    up in one group even when A and C are not directly similar.

    Returns
    -------
    list of list of int
        Groups of indexes into *keys*, ordered by their first member.
    """
    parent = list(range(len(keys)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i in range(len(keys)):
        for j in range(i + 1, len(keys)):
            if titles_similar(keys[i], keys[j]):
                root_i, root_j = find(i), find(j)
                if root_i != root_j:
                    parent[max(root_i, root_j)] = min(root_i, root_j)

    groups: dict[int, list[int]] = {}
    for i in range(len(keys)):
        groups.setdefault(find(i), []).append(i)
    return sorted(groups.values(), key=lambda g: g[0])


def enrich_groups(candidates: list[BookApiResult]) -> list[list[int]]:
    """Propagate merged metadata across every similarity group, in place.

    After this call all members of a group carry identical field values.

    Returns
    -------
    list of list of int
        The similarity groups, as returned by ``group_similar``.
    """
    groups = group_similar([normalize_title(c.title) for c in candidates])
    for group in groups:
        if len(group) < 2:
            continue
        merged = merge_group([candidates[i] for i in group])
        for i in group:
            member = candidates[i]
            member.title = merged.title
            member.author = merged.author
            member.cover_url = merged.cover_url
            member.genres = list(merged.genres)
            member.page_count = merged.page_count
            member.synopsis = merged.synopsis
    return groups


def fill_defaults(result: BookApiResult) -> BookApiResult:
    """Return a copy of *result* with required fields defaulted."""
    if result.has_required_fields():
        return replace(result, genres=list(result.genres))
    return replace(
        result,
        title=result.title or DEFAULT_TITLE,
        author=result.author or DEFAULT_AUTHOR,
        cover_url=result.cover_url or PLACEHOLDER_COVER,
        genres=list(result.genres),
    )


def significant_words(title: str, min_length: int = SIGNIFICANT_WORD_LENGTH) -> list[str]:
    """Return the distinct words of *title* longer than *min_length*.

    Surrounding punctuation is stripped; order of appearance is kept.

    Examples
    --------
    >>> significant_words("O Guarani, de José de Alencar")
    ['Guarani', 'José', 'Alencar']
    """
    words = []
    seen = set()
    for raw in title.split():
        word = _PUNCTUATION.sub("", raw)
        if len(word) > min_length and word.casefold() not in seen:
            seen.add(word.casefold())
            words.append(word)
    return words


class CatalogSearch:
    """Merged title search over Google Books and Open Library.

    Parameters
    ----------
    google : GoogleBooksClient
        Rich metadata source, also used for broadening and author queries.
    openlibrary : OpenLibraryClient
        Broad catalogue source.
    max_results_per_source, min_candidates, max_title_variations,
    max_candidates, author_query_results : int, optional
        Tunables, defaulting to the module constants.
    """

    def __init__(
        self,
        google,
        openlibrary,
        max_results_per_source: int = MAX_RESULTS_PER_SOURCE,
        min_candidates: int = MIN_CANDIDATES,
        max_title_variations: int = MAX_TITLE_VARIATIONS,
        max_candidates: int = MAX_CANDIDATES,
        author_query_results: int = AUTHOR_QUERY_RESULTS,
    ):
        self.google = google
        self.openlibrary = openlibrary
        self.max_results_per_source = max_results_per_source
        self.min_candidates = min_candidates
        self.max_title_variations = max_title_variations
        self.max_candidates = max_candidates
        self.author_query_results = author_query_results

    async def search_by_title(self, title: str) -> list[BookApiResult]:
        """Search both catalogues for *title* and return merged candidates.

        Parameters
        ----------
        title : str
            Title typed by the user.

        Returns
        -------
        list of BookApiResult
            Deduplicated candidates, each with non-empty title, author and
            cover URL. May be empty.

        Raises
        ------
        ValidationError
            If *title* is blank.
        SearchFailedError
            If both primary queries fail.
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("Enter a book title to search")

        google_results, openlibrary_results = await asyncio.gather(
            self._query(
                "title search", self.google.search_by_title, title,
                self.max_results_per_source,
            ),
            self._query(
                "title search", self.openlibrary.search_by_title, title,
                self.max_results_per_source,
            ),
        )
        if google_results is None and openlibrary_results is None:
            raise SearchFailedError(f"Could not search for {title!r}: all sources failed")

        candidates: dict[str, BookApiResult] = {}
        for results in (google_results, openlibrary_results):
            for result in results or []:
                self._add_or_merge(candidates, result)

        if len(candidates) < self.min_candidates:
            await self._broaden_by_title_words(title, candidates)

        if len(candidates) < self.min_candidates:
            await self._broaden_by_authors(title, candidates)

        ordered = list(candidates.values())
        groups = enrich_groups(ordered)
        final = [fill_defaults(ordered[group[0]]) for group in groups]
        logger.info("Search for %r produced %d candidates", title, len(final))
        return final

    async def _query(self, description: str, fetch, term: str, limit: int):
        try:
            return await fetch(term, limit)
        except SourceUnavailableError as e:
            logger.warning("Skipping %s for %r: %s", description, term, e)
            return None

    @staticmethod
    def _add_or_merge(candidates: dict[str, BookApiResult], result: BookApiResult) -> None:
        key = normalize_title(result.title)
        if not key:
            return
        if key in candidates:
            merge_missing(candidates[key], result)
        else:
            candidates[key] = replace(result, genres=list(result.genres))

    async def _broaden_by_title_words(
        self, title: str, candidates: dict[str, BookApiResult]
    ) -> None:
        variations = significant_words(title)[: self.max_title_variations]
        for word in variations:
            results = await self._query(
                "title variation", self.google.search_by_title, word,
                self.max_results_per_source,
            )
            for result in results or []:
                key = normalize_title(result.title)
                if not key:
                    continue
                match = next((k for k in candidates if titles_similar(k, key)), None)
                if match is not None:
                    merge_missing(candidates[match], result)
                elif len(candidates) < self.max_candidates:
                    candidates[key] = replace(result, genres=list(result.genres))

    async def _broaden_by_authors(
        self, title: str, candidates: dict[str, BookApiResult]
    ) -> None:
        for author in significant_words(title):
            if len(candidates) >= self.max_candidates:
                return
            results = await self._query(
                "author search", self.google.search_by_author, author,
                self.author_query_results,
            )
            for result in results or []:
                if len(candidates) >= self.max_candidates:
                    return
                key = normalize_title(result.title)
                if key and key not in candidates:
                    candidates[key] = replace(result, genres=list(result.genres))
