from __future__ import annotations

from typing import Any, Mapping, Sequence

from recordhub.schemas.listing import HighlightSpan, SearchMetrics, SearchRequest, SearchResult
from recordhub.services.operators import to_text

_TRIM = ".,!?;:"

# a fuzzy hit needs more than 3/5 of the term's characters somewhere in the text
FUZZY_NUMERATOR = 5
FUZZY_DENOMINATOR = 3
FUZZY_WEIGHT = 0.5

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to",
        "for", "of", "with", "by", "is", "are", "was", "were", "be", "been",
    }
)


def tokenize(query: str) -> list[str]:
    """Lower-cased query terms, split on whitespace and stripped of punctuation."""
    terms: list[str] = []
    for raw in (query or "").split():
        term = raw.strip(_TRIM).lower()
        if term and term not in terms:
            terms.append(term)
    return terms


def top_terms(query: str) -> list[str]:
    """Distinct query terms longer than two characters, stop words removed."""
    return [term for term in tokenize(query) if len(term) > 2 and term not in STOP_WORDS]


def fuzzy_found(lowered: str, term: str) -> int:
    return sum(1 for ch in term if ch in lowered)


def fuzzy_hit(lowered: str, term: str) -> bool:
    return FUZZY_NUMERATOR * fuzzy_found(lowered, term) > FUZZY_DENOMINATOR * len(term)


def _field_score(
    name: str,
    text: str,
    terms: Sequence[str],
    fuzzy: bool,
    highlights: list[HighlightSpan] | None,
) -> float:
    lowered = text.lower()
    score = 0.0
    for term in terms:
        start = lowered.find(term)
        if start >= 0:
            score += 1.0
            if highlights is not None:
                highlights.append(HighlightSpan(field=name, start=start, end=start + len(term)))
        elif fuzzy and fuzzy_hit(lowered, term):
            score += fuzzy_found(lowered, term) / len(term) * FUZZY_WEIGHT
    return score


def matched_fields(
    record: Mapping[str, Any],
    terms: Sequence[str],
    fields: Sequence[str],
    fuzzy: bool = False,
) -> list[str]:
    out: list[str] = []
    for name in fields:
        text = to_text(record.get(name))
        if text and _field_score(name, text, terms, fuzzy, None) > 0:
            out.append(name)
    return out


def score_record(
    record: Mapping[str, Any],
    terms: Sequence[str],
    fields: Sequence[str],
    weights: Mapping[str, float] | None = None,
    *,
    highlight: bool = True,
    fuzzy: bool = False,
) -> SearchResult | None:
    """Score one record; ``None`` when no term occurs in any searched field.

    An exact occurrence adds 1 per term, a fuzzy one adds half its character
    ratio. Field weights scale each field's share. Highlights cover exact
    occurrences only.
    """
    weights = weights or {}
    score = 0.0
    matched = False
    highlights: list[HighlightSpan] = []
    for name in fields:
        text = to_text(record.get(name))
        if not text:
            continue
        field_score = _field_score(name, text, terms, fuzzy, highlights if highlight else None)
        if field_score > 0:
            matched = True
            score += field_score * weights.get(name, 1.0)
    if not matched:
        return None
    return SearchResult(score=score, highlights=highlights)


def search_metrics(
    request: SearchRequest,
    total: int,
    field_counts: Mapping[str, int],
) -> SearchMetrics:
    return SearchMetrics(
        total_results=total,
        top_terms=top_terms(request.query),
        field_match_counts={name: count for name, count in field_counts.items() if count > 0},
    )


def search_records(
    records: Sequence[Mapping[str, Any]],
    request: SearchRequest | None,
    fields: Sequence[str],
) -> tuple[list[Mapping[str, Any]], list[SearchResult], dict[str, int]]:
    """Keep the records matching the query, in their incoming order.

    Returns the kept records, their parallel scores and how many kept records
    matched in each field.
    """
    terms = tokenize(request.query) if request is not None else []
    if not terms:
        return list(records), [], {}
    kept: list[Mapping[str, Any]] = []
    results: list[SearchResult] = []
    counts: dict[str, int] = {}
    for record in records:
        result = score_record(
            record,
            terms,
            fields,
            request.field_weights,
            highlight=request.enable_highlighting,
            fuzzy=request.enable_fuzzy,
        )
        if result is None:
            continue
        kept.append(record)
        results.append(result)
        for name in matched_fields(record, terms, fields, request.enable_fuzzy):
            counts[name] = counts.get(name, 0) + 1
    return kept, results, counts
