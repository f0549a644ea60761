"""
Engagement Queries
==================

Read-only query functions for thread views: reaction tallies, the viewer's
own reactions, and the reply tree of a thread. None of these mutate state.

THE N+1 PROBLEM:
----------------
Tallying reactions post by post costs one query per post:
    for post in posts:
        Reaction.objects.filter(post=post)   # N queries

OUR APPROACH:
-------------
1. Fetch ALL posts of a thread in ONE query (select_related author + profile)
2. Fetch ALL reaction counts for those posts in ONE grouped query
3. Fetch the viewer's reactions for those posts in ONE query
4. Build the reply tree in Python with an O(n) single pass

Thread detail costs 4 queries regardless of size or nesting depth.
"""

from collections import defaultdict
from typing import Iterable, Optional

from django.db.models import Count

from .models import Post, Reaction, Thread

REACTION_TYPES = tuple(Reaction.Type.values)


def empty_tally() -> dict:
    return {reaction_type: 0 for reaction_type in REACTION_TYPES}


def tally(post_id: int) -> dict:
    """
    Count reactions on a post per type.

    No reactions -> {'like': 0, 'love': 0, 'insightful': 0}, not an error.
    """
    return tallies_for_posts([post_id])[post_id]


def tallies_for_posts(post_ids: Iterable[int]) -> dict:
    """
    Reaction counts for many posts in a single query.

    SELECT post_id, type, COUNT(id) FROM reaction
    WHERE post_id IN (...) GROUP BY post_id, type

    Returns {post_id: {'like': n, 'love': n, 'insightful': n}}; every
    requested id is present.
    """
    post_ids = list(post_ids)
    result = {post_id: empty_tally() for post_id in post_ids}
    if not post_ids:
        return result

    rows = (
        Reaction.objects
        .filter(post_id__in=post_ids)
        .values('post_id', 'type')
        .annotate(n=Count('id'))
    )
    for row in rows:
        result[row['post_id']][row['type']] = row['n']
    return result


def user_reaction_set(post_id: int, user_id: Optional[int]) -> set:
    """Reaction types ``user_id`` has applied to the post; empty for anonymous."""
    return user_reaction_sets_for_posts([post_id], user_id).get(post_id, set())


def user_reaction_sets_for_posts(post_ids: Iterable[int], user_id: Optional[int]) -> dict:
    """
    The viewer's reactions for many posts in a single query.

    Returns {post_id: set(types)}; posts without reactions map to an empty set.
    """
    post_ids = list(post_ids)
    result = {post_id: set() for post_id in post_ids}
    if user_id is None or not post_ids:
        return result

    rows = Reaction.objects.filter(
        user_id=user_id,
        post_id__in=post_ids
    ).values_list('post_id', 'type')
    for post_id, reaction_type in rows:
        result[post_id].add(reaction_type)
    return result


def get_thread_with_author(thread_id: int) -> Optional[Thread]:
    """Fetch a single thread with its creator. Query: 1 (with JOIN)."""
    return (
        Thread.objects
        .select_related('created_by')
        .filter(id=thread_id)
        .first()
    )


def get_all_posts_for_thread(thread_id: int) -> list[Post]:
    """
    Fetch ALL posts of a thread in a SINGLE query, oldest first.

    Ordering by created_at means a parent almost always precedes its replies;
    build_post_tree() doesn't rely on it.
    """
    return list(
        Post.objects
        .filter(thread_id=thread_id)
        .select_related('author', 'author__profile')
        .order_by('created_at', 'id')
    )


def build_post_tree(
    flat_posts: list[Post],
    tallies: Optional[dict] = None,
    viewer_reactions: Optional[dict] = None
) -> list[dict]:
    """
    Build nested tree structure from flat list.

    Algorithm: O(n) single pass with hash map

    Example Output:
        [
            {
                'post': Post(id=1),
                'reactions': {'like': 2, 'love': 0, 'insightful': 1},
                'user_reactions': {'like'},
                'replies': [ ...same shape... ]
            }
        ]
    """
    tallies = tallies or {}
    viewer_reactions = viewer_reactions or {}

    nodes = {}
    for post in flat_posts:
        nodes[post.id] = {
            'post': post,
            'reactions': tallies.get(post.id, empty_tally()),
            'user_reactions': viewer_reactions.get(post.id, set()),
            'replies': []
        }

    root_nodes = []
    for post in flat_posts:
        node = nodes[post.id]
        if post.parent_id is None:
            root_nodes.append(node)
        else:
            parent_node = nodes.get(post.parent_id)
            if parent_node:
                parent_node['replies'].append(node)
            else:
                # Parent outside this thread or deleted: show as root
                root_nodes.append(node)

    return root_nodes


def get_thread_with_post_tree(thread_id: int, viewer_id: Optional[int] = None) -> Optional[dict]:
    """
    Main entry point for the thread page.

    TOTAL QUERIES: 3 (+1 with a signed-in viewer)
    - thread + creator
    - all posts + authors
    - reaction counts for those posts
    - the viewer's reactions for those posts
    """
    thread = get_thread_with_author(thread_id)
    if not thread:
        return None

    flat_posts = get_all_posts_for_thread(thread_id)
    post_ids = [post.id for post in flat_posts]

    tree = build_post_tree(
        flat_posts,
        tallies=tallies_for_posts(post_ids),
        viewer_reactions=user_reaction_sets_for_posts(post_ids, viewer_id)
    )

    return {
        'thread': thread,
        'posts': tree,
        'post_count': len(flat_posts)
    }
