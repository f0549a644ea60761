"""
Django Signals: change notifications and profile bootstrap.

CHANGE NOTIFICATIONS:
---------------------
`content_changed` fires after commit whenever a Post or Flag row is inserted,
updated or deleted. It carries (table, action, pk) only, never row data:
listeners are expected to re-fetch, which makes duplicate notifications
harmless. A push transport (websocket, SSE, Postgres LISTEN) can subscribe
here; none is bundled.

IMPORTANT: Signals do NOT fire on:
- bulk_create()
- QuerySet.update()
- QuerySet.delete()

Code paths that write with QuerySet.update() (flag review, manual report)
call notify_change() themselves.

PROFILES:
---------
Every user gets a Profile row, created when the user is created and again
checked on login (for users that predate this app).
"""

from django.contrib.auth.models import User
from django.contrib.auth.signals import user_logged_in
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import Signal, receiver

from .models import Flag, Post

# kwargs: table ('post' | 'flag'), action ('insert' | 'update' | 'delete'), pk
content_changed = Signal()


def notify_change(table: str, action: str, pk: int) -> None:
    """Schedule a content_changed notification for when the transaction commits."""
    transaction.on_commit(
        lambda: content_changed.send(sender=table, table=table, action=action, pk=pk)
    )


@receiver(post_save, sender=Post)
@receiver(post_save, sender=Flag)
def announce_save(sender, instance, created, **kwargs):
    table = 'post' if sender is Post else 'flag'
    notify_change(table, 'insert' if created else 'update', instance.pk)


@receiver(post_delete, sender=Post)
@receiver(post_delete, sender=Flag)
def announce_delete(sender, instance, **kwargs):
    table = 'post' if sender is Post else 'flag'
    notify_change(table, 'delete', instance.pk)


@receiver(post_save, sender=User)
def create_profile_for_new_user(sender, instance, created, **kwargs):
    if created:
        from .services import ensure_profile
        ensure_profile(instance)


@receiver(user_logged_in)
def ensure_profile_on_login(sender, request, user, **kwargs):
    from .services import ensure_profile
    ensure_profile(user)
