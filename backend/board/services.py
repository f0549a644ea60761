"""
Reaction & Profile Service
==========================

This module handles reaction toggling with:
1. Atomic database operations
2. Race condition prevention

CONCURRENCY STRATEGY:
---------------------
Problem: the same user double-clicks "love" and two requests arrive at once
Naive: Check if exists -> Create if not -> RACE CONDITION! (two rows)

Solution: Unique Constraint + IntegrityError (optimistic)
    - DELETE the (post, user, type) row; if a row went away, we're done
    - Otherwise INSERT inside a savepoint
    - A concurrent INSERT of the same row makes ours fail with IntegrityError;
      the row exists, which is the state the user asked for

The store never holds two rows for the same (post, user, type): the
constraint guarantees it, not request ordering.
"""

import logging
from typing import Literal

from django.db import transaction, IntegrityError
from django.contrib.auth.models import User

from .models import Post, Profile, Reaction

logger = logging.getLogger(__name__)


class ToggleResult:
    """Result of a reaction toggle."""
    def __init__(
        self,
        applied: bool,
        reaction_type: str,
        action: Literal['created', 'removed', 'already_exists']
    ):
        self.applied = applied
        self.reaction_type = reaction_type
        self.action = action


def toggle_reaction(post_id: int, user: User, reaction_type: str) -> ToggleResult:
    """
    Toggle a typed reaction on a post.

    RETURNS:
    - applied=True if the reaction is now present, False if it was removed
    """
    if reaction_type not in Reaction.Type.values:
        raise ValueError(f"Invalid reaction type: {reaction_type}")

    if not Post.objects.filter(id=post_id).exists():
        raise ValueError(f"Post {post_id} does not exist")

    with transaction.atomic():
        deleted_count, _ = Reaction.objects.filter(
            post_id=post_id,
            user=user,
            type=reaction_type
        ).delete()

        if deleted_count > 0:
            return ToggleResult(applied=False, reaction_type=reaction_type, action='removed')

        try:
            with transaction.atomic():
                Reaction.objects.create(
                    post_id=post_id,
                    user=user,
                    type=reaction_type
                )
        except IntegrityError:
            # Only a lost race leaves the row behind; anything else (the post
            # was deleted meanwhile) is a real integrity failure
            if not Reaction.objects.filter(
                post_id=post_id,
                user=user,
                type=reaction_type
            ).exists():
                raise
            logger.info(
                f"Concurrent {reaction_type} reaction by user {user.id} on post {post_id}"
            )
            return ToggleResult(applied=True, reaction_type=reaction_type, action='already_exists')

    return ToggleResult(applied=True, reaction_type=reaction_type, action='created')


def ensure_profile(user: User) -> Profile:
    """
    Create the user's profile if it doesn't exist.

    Safe to call multiple times - uses get_or_create.
    """
    profile, created = Profile.objects.get_or_create(
        user=user,
        defaults={'username': user.username}
    )
    if created:
        logger.info(f"Created profile for user {user.id}")
    return profile
