"""
Moderation Engine
=================

Lifecycle: post -> toxicity score -> auto-flag -> moderator decision.

SCORING POLICY (FAIL-OPEN):
---------------------------
The classifier is an external HTTP API. When it is unreachable, slow, or
returns something we can't read, evaluate_content() logs a warning and
scores the text 0.0, i.e. "not toxic". Posting never blocks on the
classifier. Whether outages should instead queue content for manual review
is an open product decision; see DESIGN.md.

WRITE STRATEGY:
---------------
1. The post is inserted with toxicity_score, is_flagged and sentiment in the
   same INSERT. A post never exists without its moderation fields.
2. If flagged, the auto-flag is inserted as a second, separate write.
   If that write fails the post stays: posting is the user-facing success
   path. The failure is logged as a partial failure and reported on the
   result.

REVIEW STRATEGY:
----------------
Flags are one-shot. Review is a conditional UPDATE:

    UPDATE flag SET status = %s, reviewed_at = NOW()
    WHERE id = %s AND status = 'pending'

Zero rows updated means someone else already decided the flag (or it
doesn't exist). Two moderators racing on the same flag: exactly one wins,
the other gets InvalidTransition.
"""

import logging
from typing import Optional

from django.conf import settings
from django.contrib.auth.models import User
from django.db import DatabaseError, transaction
from django.utils import timezone

from .clients import ToxicityClassifier
from .exceptions import ClassifierUnavailable, InvalidTransition, StoreWriteFailure
from .models import (
    Flag,
    Post,
    Thread,
    AUTO_FLAG_REASON,
    POST_MAX_LENGTH,
    TOXICITY_FLAG_THRESHOLD,
)
from .sentiment import DEFAULT_POLICY, SentimentPolicy
from .signals import notify_change

logger = logging.getLogger(__name__)

DEFAULT_REPORT_REASON = 'Reported by user'


def get_flag_threshold() -> float:
    """Effective auto-flag threshold (settings override the module constant)."""
    return getattr(settings, 'TOXICITY_FLAG_THRESHOLD', TOXICITY_FLAG_THRESHOLD)


def decide_flag(toxicity_score: float, threshold: Optional[float] = None) -> bool:
    """Strictly greater than the threshold: a score of exactly 0.7 is not flagged."""
    if threshold is None:
        threshold = get_flag_threshold()
    return toxicity_score > threshold


class ModerationResult:
    """Result of creating a post through the moderation pipeline."""
    def __init__(
        self,
        post: Post,
        flagged: bool,
        flag: Optional[Flag] = None,
        partial_failure: bool = False
    ):
        self.post = post
        self.flagged = flagged
        self.flag = flag
        self.partial_failure = partial_failure


class ModerationEngine:
    """
    Scores content and persists it with its moderation fields.

    The classifier is injected; views build one from settings with
    ModerationEngine.from_settings().
    """

    def __init__(
        self,
        classifier,
        threshold: Optional[float] = None,
        sentiment_policy: SentimentPolicy = DEFAULT_POLICY
    ):
        self.classifier = classifier
        self.threshold = threshold
        self.sentiment_policy = sentiment_policy

    @classmethod
    def from_settings(cls) -> 'ModerationEngine':
        return cls(ToxicityClassifier.from_settings())

    def evaluate_content(self, text: str) -> float:
        try:
            return self.classifier.score(text)
        except ClassifierUnavailable as e:
            logger.warning(f"Toxicity classifier unavailable, scoring as 0: {e}")
            return 0.0

    def decide_flag(self, toxicity_score: float) -> bool:
        return decide_flag(toxicity_score, self.threshold)

    def create_post_with_moderation(
        self,
        author: User,
        thread_id: int,
        content: str,
        parent_id: Optional[int] = None
    ) -> ModerationResult:
        """
        Score, classify and persist a new post.

        RAISES:
        - ValueError: unknown thread/parent, parent in another thread,
          empty or oversized content
        - StoreWriteFailure: the post INSERT failed
        """
        content = content or ''
        if not content.strip():
            raise ValueError("Post content cannot be empty.")
        if len(content) > POST_MAX_LENGTH:
            raise ValueError(f"Post content cannot exceed {POST_MAX_LENGTH} characters.")

        if not Thread.objects.filter(id=thread_id).exists():
            raise ValueError(f"Thread {thread_id} does not exist")

        if parent_id is not None:
            parent = Post.objects.filter(id=parent_id).only('id', 'thread_id').first()
            if parent is None:
                raise ValueError(f"Parent post {parent_id} does not exist")
            if parent.thread_id != thread_id:
                raise ValueError("Parent post must belong to the same thread.")

        toxicity_score = self.evaluate_content(content)
        is_flagged = self.decide_flag(toxicity_score)

        try:
            with transaction.atomic():
                post = Post.objects.create(
                    thread_id=thread_id,
                    parent_id=parent_id,
                    author=author,
                    content=content,
                    sentiment=self.sentiment_policy.analyze(content),
                    toxicity_score=toxicity_score,
                    is_flagged=is_flagged
                )
        except DatabaseError as e:
            logger.error(f"Failed to insert post in thread {thread_id}: {e}")
            raise StoreWriteFailure("Failed to create post, please try again.") from e

        if not is_flagged:
            return ModerationResult(post=post, flagged=False)

        try:
            with transaction.atomic():
                flag = Flag.objects.create(
                    post=post,
                    flagged_by=None,
                    reason=AUTO_FLAG_REASON,
                    ai_confidence=toxicity_score,
                    status=Flag.Status.PENDING
                )
        except DatabaseError as e:
            # Post is already committed; do not undo it
            logger.error(
                f"Partial failure: post {post.id} saved but its auto-flag "
                f"(score {toxicity_score:.2f}) could not be recorded: {e}"
            )
            return ModerationResult(post=post, flagged=True, partial_failure=True)

        logger.info(f"Post {post.id} auto-flagged with toxicity {toxicity_score:.2f}")
        return ModerationResult(post=post, flagged=True, flag=flag)

    def create_thread_with_moderation(
        self,
        user: User,
        title: str,
        description: str = ''
    ) -> Thread:
        """Create a thread, storing the toxicity of its title + description."""
        title = (title or '').strip()
        if not title:
            raise ValueError("Thread title cannot be empty.")
        description = (description or '').strip()

        toxicity_score = self.evaluate_content(f"{title}\n\n{description}".strip())

        try:
            with transaction.atomic():
                return Thread.objects.create(
                    title=title,
                    description=description,
                    created_by=user,
                    toxicity_score=toxicity_score
                )
        except DatabaseError as e:
            logger.error(f"Failed to insert thread for user {user.id}: {e}")
            raise StoreWriteFailure("Failed to create thread, please try again.") from e


def report_post(post_id: int, user: User, reason: str = '') -> Flag:
    """
    Manual report by a user.

    Creates a pending flag and marks the post as flagged, atomically.
    """
    reason = (reason or '').strip() or DEFAULT_REPORT_REASON

    try:
        with transaction.atomic():
            if not Post.objects.filter(id=post_id).exists():
                raise ValueError(f"Post {post_id} does not exist")

            flag = Flag.objects.create(
                post_id=post_id,
                flagged_by=user,
                reason=reason[:500],
                status=Flag.Status.PENDING
            )
            Post.objects.filter(id=post_id).update(is_flagged=True)
    except DatabaseError as e:
        logger.error(f"Failed to record report on post {post_id}: {e}")
        raise StoreWriteFailure("Failed to report post, please try again.") from e

    # QuerySet.update() skips post_save
    notify_change('post', 'update', post_id)
    return flag


def review_flag(flag_id: int, decision: str) -> Flag:
    """
    Move a pending flag to approved or removed.

    RAISES:
    - ValueError: decision is not approved/removed
    - Flag.DoesNotExist: unknown flag
    - InvalidTransition: flag already decided (status left unchanged)
    """
    if decision not in (Flag.Status.APPROVED, Flag.Status.REMOVED):
        raise ValueError(f"Invalid decision: {decision}")

    updated = Flag.objects.filter(
        id=flag_id,
        status=Flag.Status.PENDING
    ).update(status=decision, reviewed_at=timezone.now())

    flag = Flag.objects.get(id=flag_id)

    if not updated:
        raise InvalidTransition(flag.id, flag.status, decision)

    logger.info(f"Flag {flag.id} on post {flag.post_id} reviewed: {decision}")
    notify_change('flag', 'update', flag.id)
    return flag
