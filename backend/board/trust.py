"""
Trust Scorer (read contract only).

Trust scores are maintained outside this app and stored on Profile. This
module is how the rest of the code reads them and gates behavior on them.
"""

from typing import Optional

from django.conf import settings
from django.db.models import QuerySet

from .models import Profile, TRUSTED_AUTHOR_MIN_SCORE

LOW_TRUST_CEILING = 40
MEDIUM_TRUST_CEILING = 70


def trust_score(user_id: Optional[int]) -> int:
    """The user's trust score; 0 when the user has no profile."""
    if user_id is None:
        return 0
    score = (
        Profile.objects
        .filter(user_id=user_id)
        .values_list('trust_score', flat=True)
        .first()
    )
    return score if score is not None else 0


def trust_band(score: int) -> str:
    """Display band used by the dashboard: low < 40 <= medium < 70 <= high."""
    if score < LOW_TRUST_CEILING:
        return 'low'
    if score < MEDIUM_TRUST_CEILING:
        return 'medium'
    return 'high'


def trusted_author_min_score() -> int:
    return getattr(settings, 'TRUSTED_AUTHOR_MIN_SCORE', TRUSTED_AUTHOR_MIN_SCORE)


def filter_trusted(posts: QuerySet) -> QuerySet:
    """Keep only posts whose author's trust score meets the trusted minimum."""
    return posts.filter(author__profile__trust_score__gte=trusted_author_min_score())
