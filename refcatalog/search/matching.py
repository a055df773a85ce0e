"""
Query Matching
Tokenizes search input and decides which records match and how they rank.

All functions are pure: they never touch the store or mutate their inputs.
"""

import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..models.search import SearchQuery, ScoredRecord

CATEGORY_PREFIX = "category:"

# Searchable fields of replica records
DEFAULT_SEARCH_FIELDS: Tuple[str, ...] = ("name", "sku", "supplier", "category")

# \w is unicode-aware: Cyrillic (including ё), Latin letters and digits survive
_NON_WORD = re.compile(r"[^\w]+", re.UNICODE)


def normalize_text(text: Any) -> str:
    """Lowercase and trim; non-strings normalize to an empty string."""
    if not isinstance(text, str):
        return ""
    return text.lower().strip()


def tokenize_query(query: Optional[str]) -> List[str]:
    """
    Split a query into lowercase word tokens.

    Args:
        query: Raw search text

    Returns:
        Tokens with punctuation stripped; empty tokens discarded

    Example:
        tokenize_query("  Демонтаж, стяжки! ") -> ["демонтаж", "стяжки"]
    """
    normalized = normalize_text(query)
    if not normalized:
        return []

    tokens = []
    for word in normalized.split():
        token = _NON_WORD.sub("", word)
        if token:
            tokens.append(token)
    return tokens


def parse_query(raw_text: Optional[str], page: int = 1, page_size: int = 50) -> SearchQuery:
    """
    Turn raw input into a SearchQuery.

    A leading `category:` switches to category mode and suppresses tokenization.
    """
    text = raw_text or ""
    normalized = normalize_text(text)

    if normalized.startswith(CATEGORY_PREFIX):
        category = normalized[len(CATEGORY_PREFIX):].strip()
        return SearchQuery(
            raw_text=text,
            tokens=[],
            category_filter=category or None,
            page=page,
            page_size=page_size,
        )

    return SearchQuery(
        raw_text=text,
        tokens=tokenize_query(normalized),
        page=page,
        page_size=page_size,
    )


def get_field(record: Any, field: str) -> Any:
    """Read a field from a mapping or an attribute-style record."""
    if isinstance(record, Mapping):
        return record.get(field)
    return getattr(record, field, None)


def record_matches(record: Any, tokens: Sequence[str], fields: Sequence[str] = DEFAULT_SEARCH_FIELDS) -> bool:
    """
    AND across tokens, OR across fields.

    Every token has to be a substring of at least one searchable field.
    """
    if not tokens:
        return True

    values = [normalize_text(get_field(record, field)) for field in fields]
    values = [value for value in values if value]
    if not values:
        return False

    return all(any(token in value for value in values) for token in tokens)


def category_matches(record: Any, category: str) -> bool:
    """
    Category mode.

    Exact (case-insensitive) match on `category`, or substring of
    `category_full_path`. The asymmetry is a known simplification kept as-is.
    """
    wanted = normalize_text(category)
    if normalize_text(get_field(record, "category")) == wanted:
        return True
    full_path = normalize_text(get_field(record, "category_full_path"))
    return bool(full_path) and wanted in full_path


def filter_records(
    records: Iterable[Any],
    query: SearchQuery,
    fields: Sequence[str] = DEFAULT_SEARCH_FIELDS,
) -> List[Any]:
    """
    Evaluate a parsed query over records, keeping their original order.

    Args:
        records: Candidate records (storage order)
        query: Parsed query
        fields: Searchable field names

    Returns:
        Matching records in storage order
    """
    if query.category_filter is not None:
        return [record for record in records if category_matches(record, query.category_filter)]

    if not query.tokens:
        return list(records)

    return [record for record in records if record_matches(record, query.tokens, fields)]


def full_text_search(
    records: Iterable[Any],
    text: Optional[str],
    fields: Sequence[str] = DEFAULT_SEARCH_FIELDS,
) -> List[Any]:
    """Plain-text convenience wrapper around filter_records."""
    return filter_records(records, parse_query(text), fields)


def score_record(record: Any, tokens: Sequence[str], fields: Sequence[str]) -> Tuple[int, int]:
    """
    Score one record.

    Returns:
        (score, matched_tokens): score sums 2 for a field that starts with the
        token and 1 for a plain substring hit, over every (token, field) pair
    """
    score = 0
    matched_tokens = 0

    values = [normalize_text(get_field(record, field)) for field in fields]
    for token in tokens:
        token_hit = False
        for value in values:
            if not value or token not in value:
                continue
            token_hit = True
            score += 2 if value.startswith(token) else 1
        if token_hit:
            matched_tokens += 1

    return score, matched_tokens


def score_records(
    records: Iterable[Any],
    text: Optional[str],
    fields: Sequence[str] = DEFAULT_SEARCH_FIELDS,
) -> List[ScoredRecord]:
    """
    Ranked variant used for suggestion lists.

    Keeps only records matching every token and sorts by score, highest first.
    Ties keep storage order. Cost is O(records x tokens x fields).
    """
    tokens = tokenize_query(text)
    if not tokens:
        return [ScoredRecord(record=record, score=0) for record in records]

    scored = []
    for record in records:
        score, matched_tokens = score_record(record, tokens, fields)
        if matched_tokens == len(tokens):
            scored.append(ScoredRecord(record=record, score=score))

    scored.sort(key=lambda item: item.score, reverse=True)
    return scored


def highlight_matches(text: Optional[str], query: Optional[str]) -> List[Tuple[str, bool]]:
    """
    Split text into (fragment, is_match) pairs for result highlighting.

    Example:
        highlight_matches("Цемент М500", "цем") -> [("Цем", True), ("ент М500", False)]
    """
    if not text or not query:
        return [(text or "", False)]

    tokens = tokenize_query(query)
    if not tokens:
        return [(text, False)]

    # Longest first so overlapping tokens prefer the longer hit
    alternatives = sorted(set(tokens), key=len, reverse=True)
    pattern = re.compile("(" + "|".join(re.escape(token) for token in alternatives) + ")", re.IGNORECASE)

    fragments = []
    for part in pattern.split(text):
        if not part:
            continue
        lowered = part.lower()
        fragments.append((part, any(token == lowered for token in tokens)))
    return fragments
