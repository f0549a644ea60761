"""
AI summaries for posts and threads.

Summarizer failures stop here: callers get None and decide what to show
(the API shows NO_SUMMARY_PLACEHOLDER).
"""

import logging
from typing import Optional

from django.db import DatabaseError

from .clients import Summarizer
from .exceptions import StoreWriteFailure, SummarizerUnavailable
from .models import Post, Thread

logger = logging.getLogger(__name__)

NO_SUMMARY_PLACEHOLDER = 'No summary available.'


def summarize_text(text: str, summarizer: Optional[Summarizer] = None) -> Optional[str]:
    summarizer = summarizer or Summarizer.from_settings()
    try:
        return summarizer.summarize(text)
    except SummarizerUnavailable as e:
        logger.warning(f"Summarizer unavailable: {e}")
        return None


def summarize_post(post_id: int, summarizer: Optional[Summarizer] = None) -> Optional[str]:
    """Summary of one post. Raises Post.DoesNotExist for unknown ids."""
    content = Post.objects.values_list('content', flat=True).get(id=post_id)
    return summarize_text(content, summarizer)


def build_thread_text(thread: Thread) -> str:
    parts = [thread.title]
    if thread.description:
        parts.append(thread.description)
    parts.extend(
        thread.posts.order_by('created_at', 'id').values_list('content', flat=True)
    )
    return '\n\n'.join(parts)


def summarize_thread(thread_id: int, summarizer: Optional[Summarizer] = None) -> Optional[str]:
    """
    Summarize a thread's title, description and posts and store the result
    on the thread. On summarizer failure the stored summary is left alone.

    Raises Thread.DoesNotExist for unknown ids.
    """
    thread = Thread.objects.get(id=thread_id)
    summary = summarize_text(build_thread_text(thread), summarizer)
    if summary is None:
        return None

    try:
        Thread.objects.filter(id=thread_id).update(summary=summary)
    except DatabaseError as e:
        logger.error(f"Failed to store summary for thread {thread_id}: {e}")
        raise StoreWriteFailure("Failed to save thread summary, please try again.") from e
    return summary
