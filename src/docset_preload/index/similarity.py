"""Related-document suggestions by token overlap."""

import re

from docset_preload.index.models import DocumentSummary, SuggestedDoc

# Heuristic thresholds; tunable, not load-bearing.
MIN_SHARED_TERMS = 8
MIN_OVERLAP_SCORE = 0.18
MAX_SUGGESTIONS = 10

STOP_WORDS = frozenset({
    "the", "and", "for", "with", "that", "this", "from", "your", "into",
    "when", "where", "have", "more", "using", "used", "than", "will", "been",
    "they", "their", "only", "about", "over", "also", "such", "just", "each",
    "after", "before", "through", "while", "between", "under", "very",
})

_MARKUP_RE = re.compile(r"[`*_#\[\]()>~\-]")
_URL_RE = re.compile(r"https?://\S+")
_WORD_RE = re.compile(r"[a-z0-9]{3,}")


def tokenize_for_overlap(content: str, title: str) -> set[str]:
    """Distinct lowercase terms of ``title`` and ``content``.

    Markdown punctuation and URLs are stripped, words shorter than three
    characters and stop words are dropped.
    """
    combined = f"{title}\n{content}".lower()
    combined = _MARKUP_RE.sub(" ", combined)
    combined = _URL_RE.sub(" ", combined)
    return {word for word in _WORD_RE.findall(combined) if word not in STOP_WORDS}


def count_shared_terms(a: set[str], b: set[str]) -> int:
    return len(a & b)


def compute_suggestions(
    docs: list[DocumentSummary], contents: dict[str, str]
) -> dict[str, list[SuggestedDoc]]:
    """Rank related documents for every document in ``docs``.

    ``contents`` maps doc id to Markdown. A pair qualifies with at least
    ``MIN_SHARED_TERMS`` shared terms and an overlap ratio (shared terms over
    the smaller token set) of at least ``MIN_OVERLAP_SCORE``. The best
    ``MAX_SUGGESTIONS`` are kept, by score, then shared terms, then title.
    Quadratic in the number of documents.
    """
    tokenized = [
        (doc, tokenize_for_overlap(contents.get(doc.id, doc.title), doc.title)) for doc in docs
    ]

    suggestions: dict[str, list[SuggestedDoc]] = {}
    for source, source_tokens in tokenized:
        candidates: list[tuple[float, int, DocumentSummary]] = []
        for target, target_tokens in tokenized:
            if target.id == source.id:
                continue
            shared = count_shared_terms(source_tokens, target_tokens)
            if shared < MIN_SHARED_TERMS:
                continue
            score = shared / max(1, min(len(source_tokens), len(target_tokens)))
            if score < MIN_OVERLAP_SCORE:
                continue
            candidates.append((score, shared, target))

        candidates.sort(key=lambda c: (-c[0], -c[1], c[2].title))
        suggestions[source.id] = [
            SuggestedDoc(
                doc_id=target.id,
                title=target.title,
                path=target.path,
                url=target.url,
                content_file=target.content_file,
                index_file=target.index_file,
                overlap_score=round(score, 3),
                shared_terms=shared,
            )
            for score, shared, target in candidates[:MAX_SUGGESTIONS]
        ]
    return suggestions
