"""Trending score and label popularity.

Trending score = upvotes * 0.7 + comments * 0.3

Ranking:
1. Sort by trending score DESC
2. Then by created_at DESC (newer project wins a tie)
3. Otherwise keep input order (stable sort)

Popularity of tags/technologies is a plain occurrence count, DESC, with
ties kept in first-seen order.
"""

from collections import Counter
from collections.abc import Iterable

from app.stores.metrics import ProjectRecord

UPVOTE_WEIGHT = 0.7
COMMENT_WEIGHT = 0.3


def trending_score(project: ProjectRecord) -> float:
    """Compute the trending score for a single project."""
    return project.upvote_count * UPVOTE_WEIGHT + project.comment_count * COMMENT_WEIGHT


def rank_projects(projects: Iterable[ProjectRecord]) -> list[tuple[ProjectRecord, float]]:
    """Score and sort projects, best first.

    Returns:
        (project, score) pairs sorted by score DESC, created_at DESC.
    """
    scored = [(project, trending_score(project)) for project in projects]
    # sorted() keeps equal elements in input order, reverse=True included
    return sorted(scored, key=lambda pair: (pair[1], pair[0].created_at), reverse=True)


def count_labels(label_lists: Iterable[Iterable[str]]) -> list[tuple[str, int]]:
    """Count label occurrences across projects.

    Returns:
        (label, count) pairs sorted by count DESC, first-seen order on ties.
    """
    counts: Counter[str] = Counter()
    for labels in label_lists:
        counts.update(label for label in labels if label)
    # Counter preserves insertion order, so a stable sort keeps first-seen ties
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)
