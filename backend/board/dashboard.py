"""
Dashboard Statistics
====================

REQUIREMENTS:
- Average thread sentiment (threads without a score count as 0)
- Flag counts by status (pending / approved / removed)
- Top N most toxic threads, ties broken by most recent
- Totals: threads, posts, users
- Secondary panels: lowest-trust users, recent AI summaries, recent thread
  signals for the sentiment/toxicity chart

dashboard_stats() is a pure function over records (anything with the model
attributes), so it can be tested without a database. get_dashboard_stats()
loads the records it needs from the store and delegates.

DIVIDE-BY-ZERO:
---------------
average_sentiment over zero threads is 0.0, never NaN or ZeroDivisionError.
"""

from typing import Iterable, List, Sized, TypedDict

from .models import Flag, Post, Profile, Thread
from .trust import trust_band

FLAG_STATUSES = tuple(Flag.Status.values)
LOWEST_TRUST_LIMIT = 20
RECENT_SUMMARY_LIMIT = 5
RECENT_SIGNAL_LIMIT = 10


class DashboardStats(TypedDict):
    """Type hint for dashboard statistics."""
    total_threads: int
    total_posts: int
    total_users: int
    average_sentiment: float
    flagged_by_status: dict
    top_toxic_threads: list


def average_sentiment(threads: List) -> float:
    if not threads:
        return 0.0
    return sum(t.sentiment_score or 0 for t in threads) / len(threads)


def flagged_by_status(flags: Iterable) -> dict:
    counts = {status: 0 for status in FLAG_STATUSES}
    for flag in flags:
        counts[flag.status] = counts.get(flag.status, 0) + 1
    return counts


def top_toxic_threads(threads: Iterable, n: int = 5) -> list:
    """
    Threads sorted by toxicity_score descending, ties broken by created_at
    descending (most recent first), truncated to n. Missing scores sort as 0.
    """
    ranked = sorted(
        threads,
        key=lambda t: (t.toxicity_score or 0, t.created_at),
        reverse=True
    )
    return ranked[:n]


def dashboard_stats(
    threads: Iterable,
    posts: Sized,
    flags: Iterable,
    users: Sized,
    top_n: int = 5
) -> DashboardStats:
    threads = list(threads)
    return {
        'total_threads': len(threads),
        'total_posts': len(posts),
        'total_users': len(users),
        'average_sentiment': average_sentiment(threads),
        'flagged_by_status': flagged_by_status(flags),
        'top_toxic_threads': top_toxic_threads(threads, top_n),
    }


def get_lowest_trust_users(limit: int = LOWEST_TRUST_LIMIT) -> list:
    """Profiles with the lowest trust scores first, for the trust panel."""
    return [
        {
            'user_id': profile['user_id'],
            'username': profile['username'],
            'trust_score': profile['trust_score'],
            'band': trust_band(profile['trust_score']),
        }
        for profile in (
            Profile.objects
            .order_by('trust_score', 'user_id')
            .values('user_id', 'username', 'trust_score')[:limit]
        )
    ]


def get_recent_summaries(limit: int = RECENT_SUMMARY_LIMIT) -> list:
    return list(
        Thread.objects
        .filter(summary__isnull=False)
        .exclude(summary='')
        .order_by('-created_at')
        .values('id', 'title', 'summary')[:limit]
    )


def get_recent_thread_signals(limit: int = RECENT_SIGNAL_LIMIT) -> list:
    """Sentiment and toxicity of the most recent threads (chart data)."""
    return [
        {
            'id': row['id'],
            'title': row['title'],
            'sentiment': row['sentiment_score'] or 0,
            'toxicity': row['toxicity_score'] or 0,
        }
        for row in (
            Thread.objects
            .order_by('-created_at')
            .values('id', 'title', 'sentiment_score', 'toxicity_score')[:limit]
        )
    ]


def get_dashboard_stats(top_n: int = 5) -> dict:
    """
    Load everything the dashboard needs from the store.

    QUERIES: 7, each a narrow column list; no per-row follow-ups.
    """
    threads = Thread.objects.only(
        'id', 'title', 'toxicity_score', 'sentiment_score', 'created_at'
    )
    stats = dashboard_stats(
        threads=threads,
        posts=Post.objects.values_list('id', flat=True),
        flags=Flag.objects.only('id', 'status'),
        users=Profile.objects.values_list('user_id', flat=True),
        top_n=top_n
    )
    return {
        **stats,
        'lowest_trust_users': get_lowest_trust_users(),
        'recent_summaries': get_recent_summaries(),
        'recent_thread_signals': get_recent_thread_signals(),
    }
