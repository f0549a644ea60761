"""
Data Models for ThreadSense
===========================

Design Philosophy:
------------------
1. Posts use the Adjacency List pattern (parent_id FK) for replies
   - The reply tree of a thread is fetched in one query and assembled in Python
   - A reply must live in the same thread as its parent (checked on write)

2. Reactions are typed (like/love/insightful) and toggled per user
   - Unique constraint (post, user, type) enforced at DB level
   - Toggling never produces duplicate rows, even under concurrent clicks

3. Flags are one-shot moderation records
   - pending -> approved | removed, both terminal
   - reviewed_at is written exactly once, on the way out of pending

4. Profiles carry the externally maintained trust score
   - One row per user, created on first sign-in

Indexes Strategy:
-----------------
- post.thread_id + post.created_at: For fetching a thread's discussion
- reaction.post_id + reaction.type: For tallying
- flag.status + flag.created_at: For the moderation queue
- thread.toxicity_score: For the "most toxic threads" panel
"""

from django.db import models
from django.contrib.auth.models import User
from django.core.validators import MaxLengthValidator, MinLengthValidator
from django.utils import timezone


# ============================================================================
# MODERATION CONSTANTS
# ============================================================================
# Centralized for easy adjustment and testing. The effective threshold can be
# overridden with settings.TOXICITY_FLAG_THRESHOLD.
TOXICITY_FLAG_THRESHOLD = 0.7
AUTO_FLAG_REASON = 'Auto-flagged: high toxicity detected'
POST_MAX_LENGTH = 5000
TRUSTED_AUTHOR_MIN_SCORE = 70


class Profile(models.Model):
    """
    Public profile for a user. id is the user id.

    trust_score is maintained outside this system (admin, import jobs);
    we only read it.
    """
    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name='profile'
    )
    username = models.CharField(max_length=150)
    trust_score = models.IntegerField(default=0, db_index=True)
    avatar_url = models.URLField(blank=True, default='')

    def __str__(self):
        return f"{self.username} (trust {self.trust_score})"


class Thread(models.Model):
    """
    Top-level discussion topic.

    Immutable after creation except for the AI signals
    (summary, toxicity_score, sentiment_score).
    """
    title = models.CharField(
        max_length=300,
        validators=[MinLengthValidator(1)]
    )
    description = models.TextField(blank=True, default='')
    created_by = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='threads'
    )
    created_at = models.DateTimeField(
        default=timezone.now,
        db_index=True
    )

    toxicity_score = models.FloatField(null=True, blank=True, db_index=True)
    sentiment_score = models.FloatField(null=True, blank=True)
    summary = models.TextField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title[:50]} by {self.created_by.username}"


class Post(models.Model):
    """
    A message within a thread, optionally replying to another post.

    toxicity_score and is_flagged are written in the same INSERT as the
    post itself; a post never exists without them.
    """

    class Sentiment(models.TextChoices):
        POSITIVE = 'positive', 'Positive'
        NEGATIVE = 'negative', 'Negative'
        NEUTRAL = 'neutral', 'Neutral'

    thread = models.ForeignKey(
        Thread,
        on_delete=models.CASCADE,
        related_name='posts'
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='replies'
    )
    author = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='posts'
    )
    content = models.TextField(
        validators=[MinLengthValidator(1), MaxLengthValidator(POST_MAX_LENGTH)]
    )
    sentiment = models.CharField(
        max_length=10,
        choices=Sentiment.choices,
        default=Sentiment.NEUTRAL
    )
    toxicity_score = models.FloatField(default=0.0)
    is_flagged = models.BooleanField(default=False, db_index=True)
    created_at = models.DateTimeField(
        default=timezone.now,
        db_index=True
    )

    class Meta:
        ordering = ['created_at']
        indexes = [
            # Fetch a thread's whole discussion, oldest first
            models.Index(fields=['thread', 'created_at'], name='post_thread_created_idx'),
            # Root-post feed
            models.Index(fields=['parent', '-created_at'], name='post_parent_created_idx'),
        ]

    def __str__(self):
        return f"Post by {self.author.username} in thread {self.thread_id}"


class Flag(models.Model):
    """
    Moderation record for a post suspected of violating content policy.

    STATE MACHINE:
        pending -> approved
        pending -> removed
    approved and removed are terminal. Transitions are performed with a
    conditional UPDATE (WHERE status = 'pending') so two moderators can't
    both decide the same flag.

    flagged_by is NULL for flags raised by the system (auto-moderation).
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        APPROVED = 'approved', 'Approved'
        REMOVED = 'removed', 'Removed'

    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        related_name='flags'
    )
    flagged_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='flags_raised'
    )
    reason = models.CharField(max_length=500)
    ai_confidence = models.FloatField(null=True, blank=True)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING
    )
    created_at = models.DateTimeField(default=timezone.now)
    reviewed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', '-created_at'], name='flag_status_created_idx'),
        ]

    @property
    def is_system_flag(self):
        return self.flagged_by_id is None

    def __str__(self):
        return f"Flag on post {self.post_id} ({self.status})"


class Reaction(models.Model):
    """
    Typed endorsement of a post.

    CONCURRENCY STRATEGY:
    - Unique constraint (post, user, type) enforced at DB level
    - Toggle inserts inside a savepoint; IntegrityError means another
      request already inserted the same row
    """

    class Type(models.TextChoices):
        LIKE = 'like', 'Like'
        LOVE = 'love', 'Love'
        INSIGHTFUL = 'insightful', 'Insightful'

    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        related_name='reactions'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='reactions'
    )
    type = models.CharField(max_length=12, choices=Type.choices)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['post', 'user', 'type'],
                name='unique_reaction_per_user_per_post_per_type'
            )
        ]
        indexes = [
            # For tallying a post's reactions by type
            models.Index(fields=['post', 'type'], name='reaction_post_type_idx'),
        ]

    def __str__(self):
        return f"{self.user.username} {self.type} post {self.post_id}"
