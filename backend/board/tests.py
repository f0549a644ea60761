"""
Tests for ThreadSense

Focus areas:
1. Moderation pipeline (threshold, auto-flag, fail-open, partial failure)
2. Flag lifecycle (one-shot review)
3. Reaction toggling (no duplicates)
4. Aggregation (tallies, reply tree, dashboard)
5. HTTP surface
"""

import json
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import patch

import httpx
from django.contrib.auth.models import User
from django.db import DatabaseError, IntegrityError, connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.test.utils import CaptureQueriesContext
from django.utils import timezone
from rest_framework.test import APITestCase

from .clients import ClientConfig, Summarizer, ToxicityClassifier, EMPTY_SUMMARY
from .dashboard import dashboard_stats, get_dashboard_stats, top_toxic_threads
from .exceptions import (
    ClassifierUnavailable,
    InvalidTransition,
    StoreWriteFailure,
    SummarizerUnavailable,
)
from .models import Flag, Post, Profile, Reaction, Thread, AUTO_FLAG_REASON
from .moderation import ModerationEngine, decide_flag, report_post, review_flag
from .queries import (
    build_post_tree,
    get_all_posts_for_thread,
    get_thread_with_post_tree,
    tallies_for_posts,
    tally,
    user_reaction_set,
)
from .sentiment import DEFAULT_POLICY, SentimentPolicy
from .services import ensure_profile, toggle_reaction
from .signals import content_changed
from .summaries import NO_SUMMARY_PLACEHOLDER, summarize_post, summarize_text, summarize_thread
from .trust import filter_trusted, trust_band, trust_score


class StubClassifier:
    """Stands in for the toxicity API."""

    def __init__(self, value=0.0, error=None):
        self.value = value
        self.error = error
        self.calls = []

    def score(self, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.value


class StubSummarizer:
    def __init__(self, summary='A short summary.', error=None):
        self.summary = summary
        self.error = error
        self.calls = []

    def summarize(self, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.summary


def perspective_reply(value):
    return {'attributeScores': {'TOXICITY': {'summaryScore': {'value': value}}}}


def make_user(username, trust=0, **kwargs):
    user = User.objects.create_user(username, f'{username}@test.com', 'pass', **kwargs)
    Profile.objects.filter(user=user).update(trust_score=trust)
    return user


class DecideFlagTestCase(SimpleTestCase):
    """Auto-flag threshold is strictly greater-than."""

    def test_boundary_is_not_flagged(self):
        self.assertFalse(decide_flag(0.7))

    def test_scores_around_threshold(self):
        for score, expected in [(0.0, False), (0.69, False), (0.7001, True), (0.85, True), (1.0, True)]:
            with self.subTest(score=score):
                self.assertEqual(decide_flag(score), expected)

    @override_settings(TOXICITY_FLAG_THRESHOLD=0.5)
    def test_threshold_from_settings(self):
        self.assertTrue(decide_flag(0.6))
        self.assertFalse(decide_flag(0.5))

    def test_engine_threshold_override(self):
        engine = ModerationEngine(StubClassifier(), threshold=0.9)
        self.assertFalse(engine.decide_flag(0.85))
        self.assertTrue(engine.decide_flag(0.95))


class ModerationEngineTestCase(TestCase):
    """
    Post creation through the moderation pipeline.

    CRITICAL: a post is never stored without its toxicity fields, and a
    failing auto-flag never undoes the post.
    """

    def setUp(self):
        self.author = make_user('author')
        self.thread = Thread.objects.create(title='Thread', created_by=self.author)
        self.other_thread = Thread.objects.create(title='Other', created_by=self.author)

    def test_classifier_network_error_fails_open(self):
        """Network error on "hello world" -> score 0, not flagged, no Flag row."""
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        classifier = ToxicityClassifier(
            ClientConfig(url='https://toxicity.test/analyze', api_key='k'),
            transport=httpx.MockTransport(refuse)
        )
        engine = ModerationEngine(classifier)

        self.assertEqual(engine.evaluate_content('hello world'), 0.0)
        self.assertFalse(engine.decide_flag(0))

        result = engine.create_post_with_moderation(self.author, self.thread.id, 'hello world')

        self.assertFalse(result.flagged)
        self.assertFalse(result.post.is_flagged)
        self.assertEqual(result.post.toxicity_score, 0.0)
        self.assertEqual(Flag.objects.count(), 0)

    def test_toxic_post_is_flagged(self):
        """Classifier returns 0.85 for "X" -> flagged post + pending Flag(0.85)."""
        engine = ModerationEngine(StubClassifier(0.85))

        result = engine.create_post_with_moderation(self.author, self.thread.id, 'X')

        post = Post.objects.get(id=result.post.id)
        self.assertEqual(post.toxicity_score, 0.85)
        self.assertTrue(post.is_flagged)
        self.assertTrue(result.flagged)
        self.assertFalse(result.partial_failure)

        flags = Flag.objects.filter(post=post)
        self.assertEqual(flags.count(), 1)
        flag = flags.get()
        self.assertEqual(flag.status, Flag.Status.PENDING)
        self.assertEqual(flag.ai_confidence, 0.85)
        self.assertEqual(flag.reason, AUTO_FLAG_REASON)
        self.assertIsNone(flag.flagged_by)
        self.assertIsNone(flag.reviewed_at)
        self.assertEqual(result.flag, flag)

    def test_score_at_threshold_creates_no_flag(self):
        engine = ModerationEngine(StubClassifier(0.7))
        result = engine.create_post_with_moderation(self.author, self.thread.id, 'borderline')

        self.assertFalse(result.post.is_flagged)
        self.assertEqual(Flag.objects.count(), 0)

    def test_sentiment_is_stored(self):
        engine = ModerationEngine(StubClassifier(0.1))
        result = engine.create_post_with_moderation(
            self.author, self.thread.id, 'What a wonderful and amazing idea'
        )
        self.assertEqual(result.post.sentiment, Post.Sentiment.POSITIVE)

    def test_reply_in_same_thread(self):
        engine = ModerationEngine(StubClassifier(0.1))
        root = engine.create_post_with_moderation(self.author, self.thread.id, 'root').post
        reply = engine.create_post_with_moderation(
            self.author, self.thread.id, 'reply', parent_id=root.id
        ).post

        self.assertEqual(reply.parent_id, root.id)

    def test_reply_to_post_in_other_thread_rejected(self):
        """parent must live in the same thread as the reply."""
        engine = ModerationEngine(StubClassifier(0.1))
        foreign = engine.create_post_with_moderation(self.author, self.other_thread.id, 'elsewhere').post

        with self.assertRaises(ValueError):
            engine.create_post_with_moderation(
                self.author, self.thread.id, 'reply', parent_id=foreign.id
            )
        self.assertEqual(Post.objects.filter(thread=self.thread).count(), 0)

    def test_empty_content_rejected(self):
        engine = ModerationEngine(StubClassifier())
        with self.assertRaises(ValueError):
            engine.create_post_with_moderation(self.author, self.thread.id, '   ')
        self.assertEqual(engine.classifier.calls, [])

    def test_content_kept_verbatim(self):
        classifier = StubClassifier(0.1)
        engine = ModerationEngine(classifier)

        result = engine.create_post_with_moderation(self.author, self.thread.id, '  quoted\n> text\n')

        self.assertEqual(Post.objects.get(id=result.post.id).content, '  quoted\n> text\n')
        self.assertEqual(classifier.calls, ['  quoted\n> text\n'])

    def test_unknown_thread_rejected(self):
        engine = ModerationEngine(StubClassifier())
        with self.assertRaises(ValueError):
            engine.create_post_with_moderation(self.author, 999999, 'hello')

    def test_flag_write_failure_keeps_post(self):
        """Partial failure: post stays, no flag, result says so."""
        engine = ModerationEngine(StubClassifier(0.95))

        with patch.object(Flag.objects, 'create', side_effect=DatabaseError('flag table locked')):
            with self.assertLogs('board.moderation', level='ERROR') as logs:
                result = engine.create_post_with_moderation(self.author, self.thread.id, 'nasty')

        self.assertTrue(result.partial_failure)
        self.assertTrue(result.flagged)
        self.assertIsNone(result.flag)
        self.assertTrue(Post.objects.filter(id=result.post.id, is_flagged=True).exists())
        self.assertEqual(Flag.objects.count(), 0)
        self.assertIn('Partial failure', logs.output[0])

    def test_post_write_failure_raises_store_write_failure(self):
        engine = ModerationEngine(StubClassifier(0.95))

        with patch.object(Post.objects, 'create', side_effect=DatabaseError('connection lost')):
            with self.assertRaises(StoreWriteFailure):
                engine.create_post_with_moderation(self.author, self.thread.id, 'hello')

        self.assertEqual(Flag.objects.count(), 0)

    def test_create_thread_stores_toxicity(self):
        classifier = StubClassifier(0.4)
        engine = ModerationEngine(classifier)

        thread = engine.create_thread_with_moderation(self.author, '  Title ', 'Body')

        self.assertEqual(thread.title, 'Title')
        self.assertEqual(thread.toxicity_score, 0.4)
        self.assertEqual(classifier.calls, ['Title\n\nBody'])


class FlagLifecycleTestCase(TestCase):
    """pending -> approved | removed, both terminal."""

    def setUp(self):
        self.author = make_user('author')
        self.reporter = make_user('reporter')
        self.thread = Thread.objects.create(title='Thread', created_by=self.author)
        self.post = Post.objects.create(thread=self.thread, author=self.author, content='text')
        self.flag = Flag.objects.create(post=self.post, reason=AUTO_FLAG_REASON, ai_confidence=0.9)

    def test_approve_pending_flag(self):
        flag = review_flag(self.flag.id, Flag.Status.APPROVED)

        self.assertEqual(flag.status, Flag.Status.APPROVED)
        self.assertIsNotNone(flag.reviewed_at)

    def test_remove_pending_flag(self):
        flag = review_flag(self.flag.id, Flag.Status.REMOVED)
        self.assertEqual(flag.status, Flag.Status.REMOVED)

    def test_rereview_is_rejected(self):
        """A decided flag can't be decided again; nothing changes."""
        review_flag(self.flag.id, Flag.Status.APPROVED)
        reviewed_at = Flag.objects.get(id=self.flag.id).reviewed_at

        for decision in (Flag.Status.APPROVED, Flag.Status.REMOVED):
            with self.subTest(decision=decision):
                with self.assertRaises(InvalidTransition) as ctx:
                    review_flag(self.flag.id, decision)
                self.assertEqual(ctx.exception.current_status, Flag.Status.APPROVED)

        flag = Flag.objects.get(id=self.flag.id)
        self.assertEqual(flag.status, Flag.Status.APPROVED)
        self.assertEqual(flag.reviewed_at, reviewed_at)

    def test_invalid_decision(self):
        with self.assertRaises(ValueError):
            review_flag(self.flag.id, Flag.Status.PENDING)

    def test_unknown_flag(self):
        with self.assertRaises(Flag.DoesNotExist):
            review_flag(999999, Flag.Status.APPROVED)

    def test_manual_report(self):
        flag = report_post(self.post.id, self.reporter, '  spam  ')

        self.assertEqual(flag.status, Flag.Status.PENDING)
        self.assertEqual(flag.flagged_by, self.reporter)
        self.assertEqual(flag.reason, 'spam')
        self.assertIsNone(flag.ai_confidence)
        self.post.refresh_from_db()
        self.assertTrue(self.post.is_flagged)

    def test_manual_report_unknown_post(self):
        with self.assertRaises(ValueError):
            report_post(999999, self.reporter)


class ReactionToggleTestCase(TransactionTestCase):
    """
    Test reaction toggling.

    These tests verify that:
    1. Toggling twice returns to the original state
    2. Duplicate rows are impossible
    3. A lost insert race is handled gracefully
    """

    def setUp(self):
        self.user = make_user('user')
        self.author = make_user('author')
        self.thread = Thread.objects.create(title='Thread', created_by=self.author)
        self.post = Post.objects.create(thread=self.thread, author=self.author, content='text')

    def test_toggle_twice(self):
        first = toggle_reaction(self.post.id, self.user, 'love')
        self.assertTrue(first.applied)
        self.assertEqual(Reaction.objects.filter(post=self.post, user=self.user, type='love').count(), 1)

        second = toggle_reaction(self.post.id, self.user, 'love')
        self.assertFalse(second.applied)
        self.assertEqual(Reaction.objects.filter(post=self.post, user=self.user).count(), 0)

    def test_types_are_independent(self):
        toggle_reaction(self.post.id, self.user, 'like')
        toggle_reaction(self.post.id, self.user, 'insightful')

        self.assertEqual(user_reaction_set(self.post.id, self.user.id), {'like', 'insightful'})

    def test_database_rejects_duplicates(self):
        Reaction.objects.create(post=self.post, user=self.user, type='like')
        with self.assertRaises(IntegrityError):
            Reaction.objects.create(post=self.post, user=self.user, type='like')

    def test_lost_insert_race(self):
        """
        Another request inserted the row after our DELETE found nothing.
        Our INSERT hits the constraint; the reaction is reported as present.
        """
        Reaction.objects.create(post=self.post, user=self.user, type='like')

        with patch('django.db.models.query.QuerySet.delete', return_value=(0, {})):
            result = toggle_reaction(self.post.id, self.user, 'like')

        self.assertTrue(result.applied)
        self.assertEqual(result.action, 'already_exists')
        self.assertEqual(Reaction.objects.filter(post=self.post, user=self.user, type='like').count(), 1)

    def test_insert_failure_without_row_is_raised(self):
        """An IntegrityError that left no row behind (e.g. post deleted) is not a lost race."""
        with patch.object(
            Reaction.objects, 'create',
            side_effect=IntegrityError('FOREIGN KEY constraint failed')
        ):
            with self.assertRaises(IntegrityError):
                toggle_reaction(self.post.id, self.user, 'like')

        self.assertEqual(Reaction.objects.count(), 0)

    def test_invalid_type(self):
        with self.assertRaises(ValueError):
            toggle_reaction(self.post.id, self.user, 'angry')

    def test_unknown_post(self):
        with self.assertRaises(ValueError):
            toggle_reaction(999999, self.user, 'like')


class EngagementQueriesTestCase(TestCase):
    """Tallies, viewer reaction sets and the reply tree."""

    def setUp(self):
        self.author = make_user('author')
        self.alice = make_user('alice')
        self.bob = make_user('bob')
        self.thread = Thread.objects.create(title='Thread', created_by=self.author)
        self.post = Post.objects.create(thread=self.thread, author=self.author, content='root')

    def test_empty_tally(self):
        self.assertEqual(tally(self.post.id), {'like': 0, 'love': 0, 'insightful': 0})

    def test_tally_counts_by_type(self):
        Reaction.objects.create(post=self.post, user=self.alice, type='like')
        Reaction.objects.create(post=self.post, user=self.bob, type='like')
        Reaction.objects.create(post=self.post, user=self.bob, type='insightful')

        self.assertEqual(tally(self.post.id), {'like': 2, 'love': 0, 'insightful': 1})

    def test_tallies_for_many_posts_single_query(self):
        other = Post.objects.create(thread=self.thread, author=self.author, content='second')
        Reaction.objects.create(post=other, user=self.alice, type='love')

        with self.assertNumQueries(1):
            result = tallies_for_posts([self.post.id, other.id])

        self.assertEqual(result[self.post.id]['love'], 0)
        self.assertEqual(result[other.id]['love'], 1)

    def test_user_reaction_set(self):
        Reaction.objects.create(post=self.post, user=self.alice, type='love')

        self.assertEqual(user_reaction_set(self.post.id, self.alice.id), {'love'})
        self.assertEqual(user_reaction_set(self.post.id, self.bob.id), set())
        self.assertEqual(user_reaction_set(self.post.id, None), set())

    def test_tree_building_nested(self):
        reply = Post.objects.create(thread=self.thread, author=self.alice, parent=self.post, content='reply')
        Post.objects.create(thread=self.thread, author=self.bob, parent=reply, content='reply to reply')
        Post.objects.create(thread=self.thread, author=self.bob, content='second root')

        tree = build_post_tree(get_all_posts_for_thread(self.thread.id))

        self.assertEqual(len(tree), 2)
        self.assertEqual(tree[0]['post'].id, self.post.id)
        self.assertEqual(tree[0]['replies'][0]['post'].id, reply.id)
        self.assertEqual(len(tree[0]['replies'][0]['replies']), 1)
        self.assertEqual(tree[0]['reactions'], {'like': 0, 'love': 0, 'insightful': 0})

    def test_thread_detail_query_count(self):
        """Loading a thread with 30 posts must NOT cost 30 queries."""
        parent = None
        for i in range(30):
            if i % 5 == 0:
                parent = Post.objects.create(thread=self.thread, author=self.alice, content=f'Post {i}')
            else:
                Post.objects.create(thread=self.thread, author=self.bob, parent=parent, content=f'Reply {i}')
        Reaction.objects.create(post=parent, user=self.alice, type='like')

        with CaptureQueriesContext(connection) as context:
            detail = get_thread_with_post_tree(self.thread.id, viewer_id=self.alice.id)

        self.assertLessEqual(len(context), 4)
        self.assertEqual(detail['post_count'], 31)

    def test_missing_thread(self):
        self.assertIsNone(get_thread_with_post_tree(999999))


class DashboardStatsTestCase(SimpleTestCase):
    """Pure aggregation over in-memory records."""

    def thread(self, id, toxicity, hours_ago=0, sentiment=None):
        return SimpleNamespace(
            id=id,
            title=f'Thread {id}',
            toxicity_score=toxicity,
            sentiment_score=sentiment,
            created_at=timezone.now() - timedelta(hours=hours_ago)
        )

    def test_zero_threads(self):
        stats = dashboard_stats(threads=[], posts=[], flags=[], users=[])

        self.assertEqual(stats['average_sentiment'], 0)
        self.assertEqual(stats['top_toxic_threads'], [])
        self.assertEqual(stats['flagged_by_status'], {'pending': 0, 'approved': 0, 'removed': 0})

    def test_average_sentiment_counts_missing_as_zero(self):
        threads = [self.thread(1, 0.1, sentiment=0.6), self.thread(2, 0.1, sentiment=None)]
        stats = dashboard_stats(threads, posts=[1, 2, 3], flags=[], users=[1])

        self.assertAlmostEqual(stats['average_sentiment'], 0.3)
        self.assertEqual(stats['total_threads'], 2)
        self.assertEqual(stats['total_posts'], 3)
        self.assertEqual(stats['total_users'], 1)

    def test_flagged_by_status(self):
        flags = [SimpleNamespace(status=s) for s in ['pending', 'pending', 'removed']]
        stats = dashboard_stats([], [], flags, [])

        self.assertEqual(stats['flagged_by_status'], {'pending': 2, 'approved': 0, 'removed': 1})

    def test_top_toxic_threads_of_eight(self):
        threads = [
            self.thread(1, 0.2, hours_ago=1),
            self.thread(2, 0.9, hours_ago=5),
            self.thread(3, 0.5, hours_ago=2),
            self.thread(4, 0.9, hours_ago=1),   # ties with 2, newer
            self.thread(5, None, hours_ago=0),
            self.thread(6, 0.7, hours_ago=3),
            self.thread(7, 0.1, hours_ago=4),
            self.thread(8, 0.6, hours_ago=6),
        ]

        top = top_toxic_threads(threads, 5)

        self.assertEqual(len(top), 5)
        self.assertEqual([t.id for t in top], [4, 2, 6, 8, 3])


class DashboardQueryTestCase(TestCase):

    def setUp(self):
        self.author = make_user('author', trust=80)
        self.troll = make_user('troll', trust=10)
        self.thread = Thread.objects.create(
            title='Hot', created_by=self.author, toxicity_score=0.8,
            sentiment_score=0.5, summary='People argued.'
        )
        Thread.objects.create(title='Calm', created_by=self.author, toxicity_score=0.1)
        post = Post.objects.create(thread=self.thread, author=self.troll, content='x')
        Flag.objects.create(post=post, reason='r', status=Flag.Status.PENDING)
        Flag.objects.create(post=post, reason='r', status=Flag.Status.REMOVED)

    def test_get_dashboard_stats(self):
        stats = get_dashboard_stats()

        self.assertEqual(stats['total_threads'], 2)
        self.assertEqual(stats['total_posts'], 1)
        self.assertEqual(stats['total_users'], 2)
        self.assertAlmostEqual(stats['average_sentiment'], 0.25)
        self.assertEqual(stats['flagged_by_status'], {'pending': 1, 'approved': 0, 'removed': 1})
        self.assertEqual(stats['top_toxic_threads'][0].title, 'Hot')
        self.assertEqual(stats['lowest_trust_users'][0]['username'], 'troll')
        self.assertEqual(stats['lowest_trust_users'][0]['band'], 'low')
        self.assertEqual(stats['recent_summaries'][0]['summary'], 'People argued.')


class TrustTestCase(TestCase):

    def test_missing_profile_scores_zero(self):
        self.assertEqual(trust_score(999999), 0)
        self.assertEqual(trust_score(None), 0)

    def test_profile_created_with_user(self):
        user = make_user('newbie')
        self.assertTrue(Profile.objects.filter(user=user, username='newbie').exists())
        self.assertEqual(trust_score(user.id), 0)

    def test_ensure_profile_is_idempotent(self):
        user = make_user('someone', trust=55)
        ensure_profile(user)
        ensure_profile(user)

        self.assertEqual(Profile.objects.filter(user=user).count(), 1)
        self.assertEqual(trust_score(user.id), 55)

    def test_trust_band(self):
        self.assertEqual(trust_band(0), 'low')
        self.assertEqual(trust_band(39), 'low')
        self.assertEqual(trust_band(40), 'medium')
        self.assertEqual(trust_band(69), 'medium')
        self.assertEqual(trust_band(70), 'high')

    def test_filter_trusted(self):
        trusted = make_user('trusted', trust=70)
        untrusted = make_user('untrusted', trust=69)
        thread = Thread.objects.create(title='T', created_by=trusted)
        keep = Post.objects.create(thread=thread, author=trusted, content='a')
        Post.objects.create(thread=thread, author=untrusted, content='b')

        self.assertEqual(list(filter_trusted(Post.objects.all())), [keep])


class SentimentPolicyTestCase(SimpleTestCase):

    def test_positive(self):
        self.assertEqual(DEFAULT_POLICY.analyze('I loved this, great work'), 'positive')

    def test_negative(self):
        self.assertEqual(DEFAULT_POLICY.analyze('This is terrible and awful'), 'negative')

    def test_neutral_on_tie_or_nothing(self):
        self.assertEqual(DEFAULT_POLICY.analyze('good but bad'), 'neutral')
        self.assertEqual(DEFAULT_POLICY.analyze('the train leaves at noon'), 'neutral')

    def test_toxic_word_wins(self):
        self.assertEqual(DEFAULT_POLICY.analyze('great amazing wonderful, you idiot'), 'negative')

    def test_custom_word_lists(self):
        policy = SentimentPolicy(
            positive_words=frozenset({'kudos'}),
            negative_words=frozenset({'meh'}),
            toxic_words=frozenset()
        )
        self.assertEqual(policy.analyze('kudos'), 'positive')
        self.assertEqual(policy.analyze('great'), 'neutral')


class ToxicityClassifierTestCase(SimpleTestCase):

    def classifier(self, handler, api_key='secret'):
        return ToxicityClassifier(
            ClientConfig(url='https://toxicity.test/analyze', api_key=api_key, timeout=1.0),
            transport=httpx.MockTransport(handler)
        )

    def test_parses_summary_score(self):
        seen = {}

        def handler(request):
            seen['key'] = request.url.params['key']
            seen['body'] = json.loads(request.content)
            return httpx.Response(200, json=perspective_reply(0.42))

        self.assertEqual(self.classifier(handler).score('hello'), 0.42)
        self.assertEqual(seen['key'], 'secret')
        self.assertEqual(seen['body']['comment'], {'text': 'hello'})
        self.assertEqual(seen['body']['requestedAttributes'], {'TOXICITY': {}})

    def test_null_score_is_zero(self):
        handler = lambda request: httpx.Response(200, json=perspective_reply(None))
        self.assertEqual(self.classifier(handler).score('hello'), 0.0)

    def test_failures_raise_classifier_unavailable(self):
        def timeout(request):
            raise httpx.ReadTimeout("timed out", request=request)

        cases = {
            'server error': lambda request: httpx.Response(500, json={'error': 'boom'}),
            'not json': lambda request: httpx.Response(200, content=b'<html>'),
            'missing score': lambda request: httpx.Response(200, json={'attributeScores': {}}),
            'out of range': lambda request: httpx.Response(200, json=perspective_reply(1.5)),
            'not a number': lambda request: httpx.Response(200, json=perspective_reply('high')),
            'timeout': timeout,
        }
        for name, handler in cases.items():
            with self.subTest(name):
                with self.assertRaises(ClassifierUnavailable):
                    self.classifier(handler).score('hello')

    def test_invalid_url_raises_classifier_unavailable(self):
        classifier = ToxicityClassifier(
            ClientConfig(url='https://exa mple.com/\x00', api_key='secret')
        )
        with self.assertRaises(ClassifierUnavailable):
            classifier.score('hello')

    def test_invalid_url_scores_zero_in_engine(self):
        engine = ModerationEngine(ToxicityClassifier(
            ClientConfig(url='https://exa mple.com/\x00', api_key='secret')
        ))
        self.assertEqual(engine.evaluate_content('hello world'), 0.0)

    def test_missing_api_key_makes_no_request(self):
        def handler(request):
            raise AssertionError('no request expected')

        with self.assertRaises(ClassifierUnavailable):
            self.classifier(handler, api_key='').score('hello')


class SummarizerTestCase(SimpleTestCase):

    def summarizer(self, handler):
        return Summarizer(
            ClientConfig(url='https://llm.test/v1beta/', api_key='secret', timeout=1.0),
            model='test-model',
            transport=httpx.MockTransport(handler)
        )

    def test_extracts_first_candidate(self):
        seen = {}

        def handler(request):
            seen['path'] = request.url.path
            seen['body'] = json.loads(request.content)
            return httpx.Response(200, json={
                'candidates': [{'content': {'parts': [{'text': '  Short summary.  '}]}}]
            })

        self.assertEqual(self.summarizer(handler).summarize('long text'), 'Short summary.')
        self.assertEqual(seen['path'], '/v1beta/models/test-model:generateContent')
        prompt = seen['body']['contents'][0]['parts'][0]['text']
        self.assertTrue(prompt.startswith('Summarize this discussion'))
        self.assertTrue(prompt.endswith('long text'))

    def test_empty_reply_gets_placeholder_text(self):
        handler = lambda request: httpx.Response(200, json={'candidates': []})
        self.assertEqual(self.summarizer(handler).summarize('x'), EMPTY_SUMMARY)

    def test_http_error_raises(self):
        handler = lambda request: httpx.Response(503)
        with self.assertRaises(SummarizerUnavailable):
            self.summarizer(handler).summarize('x')

    def test_invalid_url_raises(self):
        summarizer = Summarizer(
            ClientConfig(url='https://exa mple.com/\x00', api_key='secret'),
            model='test-model'
        )
        with self.assertRaises(SummarizerUnavailable):
            summarizer.summarize('x')

    def test_invalid_url_gives_no_summary(self):
        summarizer = Summarizer(
            ClientConfig(url='https://exa mple.com/\x00', api_key='secret'),
            model='test-model'
        )
        self.assertIsNone(summarize_text('x', summarizer))


class SummariesTestCase(TestCase):

    def setUp(self):
        self.author = make_user('author')
        self.thread = Thread.objects.create(title='Title', description='Desc', created_by=self.author)
        self.post = Post.objects.create(thread=self.thread, author=self.author, content='First post')

    def test_summarize_thread_stores_summary(self):
        summarizer = StubSummarizer('Everyone agreed.')

        self.assertEqual(summarize_thread(self.thread.id, summarizer), 'Everyone agreed.')
        self.thread.refresh_from_db()
        self.assertEqual(self.thread.summary, 'Everyone agreed.')
        self.assertEqual(summarizer.calls, ['Title\n\nDesc\n\nFirst post'])

    def test_summarizer_failure_keeps_old_summary(self):
        Thread.objects.filter(id=self.thread.id).update(summary='Old')
        summarizer = StubSummarizer(error=SummarizerUnavailable('down'))

        self.assertIsNone(summarize_thread(self.thread.id, summarizer))
        self.thread.refresh_from_db()
        self.assertEqual(self.thread.summary, 'Old')

    def test_summarize_post(self):
        summarizer = StubSummarizer('Post summary.')
        self.assertEqual(summarize_post(self.post.id, summarizer), 'Post summary.')
        self.assertEqual(summarizer.calls, ['First post'])

    def test_summarize_unknown_post(self):
        with self.assertRaises(Post.DoesNotExist):
            summarize_post(999999, StubSummarizer())


class ChangeNotificationTestCase(TestCase):
    """content_changed fires after commit for posts and flags."""

    def setUp(self):
        self.author = make_user('author')
        self.thread = Thread.objects.create(title='Thread', created_by=self.author)
        self.events = []
        content_changed.connect(self.record)

    def tearDown(self):
        content_changed.disconnect(self.record)

    def record(self, sender, table, action, pk, **kwargs):
        self.events.append((table, action, pk))

    def test_post_and_flag_inserts(self):
        engine = ModerationEngine(StubClassifier(0.9))

        with self.captureOnCommitCallbacks(execute=True):
            result = engine.create_post_with_moderation(self.author, self.thread.id, 'nasty')

        self.assertIn(('post', 'insert', result.post.id), self.events)
        self.assertIn(('flag', 'insert', result.flag.id), self.events)

    def test_review_announces_flag_update(self):
        post = Post.objects.create(thread=self.thread, author=self.author, content='x')
        flag = Flag.objects.create(post=post, reason='r')

        with self.captureOnCommitCallbacks(execute=True):
            review_flag(flag.id, Flag.Status.REMOVED)

        self.assertIn(('flag', 'update', flag.id), self.events)


class PostApiTestCase(APITestCase):
    """POST /api/posts/ and GET /api/posts/<id>/summarize/"""

    def setUp(self):
        self.author = make_user('author')
        self.thread = Thread.objects.create(title='Thread', created_by=self.author)
        self.client.force_authenticate(self.author)

    def create(self, **overrides):
        body = {
            'author_id': self.author.id,
            'thread_id': self.thread.id,
            'content': 'Hello there',
            'parent_id': None,
        }
        body.update(overrides)
        return self.client.post('/api/posts/', body, format='json')

    @patch.object(ToxicityClassifier, 'score', return_value=0.85)
    def test_create_flagged_post(self, mock_score):
        response = self.create(content='X')

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data['flagged'])
        self.assertEqual(response.data['post']['toxicity_score'], 0.85)
        self.assertEqual(Flag.objects.filter(post_id=response.data['post']['id']).count(), 1)

    @patch.object(ToxicityClassifier, 'score', return_value=0.1)
    def test_anonymous_post_rejected(self, mock_score):
        self.client.force_authenticate(None)

        response = self.create(content='I am the author')

        self.assertIn(response.status_code, (401, 403))
        self.assertEqual(Post.objects.count(), 0)

    @patch.object(ToxicityClassifier, 'score', return_value=0.1)
    def test_cannot_post_as_someone_else(self, mock_score):
        moderator = make_user('mod', is_staff=True)

        response = self.create(author_id=moderator.id, content='I am the moderator')

        self.assertEqual(response.status_code, 403)
        self.assertEqual(Post.objects.count(), 0)

    @patch.object(ToxicityClassifier, 'score', return_value=0.1)
    def test_staff_may_post_for_another_user(self, mock_score):
        moderator = make_user('mod', is_staff=True)
        self.client.force_authenticate(moderator)

        response = self.create()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['post']['author']['id'], self.author.id)

    @patch.object(ToxicityClassifier, 'score', return_value=0.1)
    def test_content_stored_as_sent(self, mock_score):
        response = self.create(content='  indented\ncode  \n')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(Post.objects.get().content, '  indented\ncode  \n')

    @patch.object(ToxicityClassifier, 'score', return_value=0.1)
    def test_blank_content_rejected(self, mock_score):
        response = self.create(content=' \n ')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(Post.objects.count(), 0)

    @override_settings(PERSPECTIVE_API_KEY='')
    def test_create_post_without_classifier_key_fails_open(self):
        response = self.create()

        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.data['flagged'])
        self.assertEqual(response.data['post']['toxicity_score'], 0.0)

    @patch.object(ToxicityClassifier, 'score', return_value=0.1)
    def test_parent_from_other_thread_rejected(self, mock_score):
        other = Thread.objects.create(title='Other', created_by=self.author)
        foreign = Post.objects.create(thread=other, author=self.author, content='elsewhere')

        response = self.create(parent_id=foreign.id)

        self.assertEqual(response.status_code, 400)
        self.assertIn('error', response.data)

    @patch.object(ToxicityClassifier, 'score', return_value=0.1)
    def test_store_failure_returns_500(self, mock_score):
        with patch.object(Post.objects, 'create', side_effect=DatabaseError('down')):
            response = self.create()

        self.assertEqual(response.status_code, 500)
        self.assertIn('Failed to create post', response.data['error'])

    @patch.object(ToxicityClassifier, 'score', return_value=0.95)
    def test_partial_failure_still_201(self, mock_score):
        with patch.object(Flag.objects, 'create', side_effect=DatabaseError('down')):
            response = self.create()

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data['flagged'])
        self.assertIn('warning', response.data)

    @patch.object(Summarizer, 'summarize', return_value='Tiny summary.')
    def test_summarize_post(self, mock_summarize):
        post = Post.objects.create(thread=self.thread, author=self.author, content='Long post')

        response = self.client.get(f'/api/posts/{post.id}/summarize/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['summary'], 'Tiny summary.')
        mock_summarize.assert_called_once_with('Long post')

    @patch.object(Summarizer, 'summarize', side_effect=SummarizerUnavailable('down'))
    def test_summarize_post_summarizer_down(self, mock_summarize):
        post = Post.objects.create(thread=self.thread, author=self.author, content='Long post')

        response = self.client.get(f'/api/posts/{post.id}/summarize/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['summary'], NO_SUMMARY_PLACEHOLDER)
        self.assertFalse(response.data['available'])

    def test_summarize_missing_post(self):
        response = self.client.get('/api/posts/999999/summarize/')
        self.assertEqual(response.status_code, 404)


class BoardApiTestCase(APITestCase):
    """Threads, reactions, flags, dashboard, trust and auth endpoints."""

    def setUp(self):
        self.user = make_user('user', trust=75)
        self.moderator = make_user('mod', trust=90, is_staff=True)
        self.thread = Thread.objects.create(title='Thread', created_by=self.user)
        self.post = Post.objects.create(thread=self.thread, author=self.user, content='root post')

    @patch.object(ToxicityClassifier, 'score', return_value=0.3)
    def test_create_thread(self, mock_score):
        self.client.force_authenticate(self.user)

        response = self.client.post('/api/threads/', {'title': 'New', 'description': 'D'}, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['toxicity_score'], 0.3)
        self.assertEqual(response.data['created_by']['username'], 'user')

    def test_create_thread_requires_login(self):
        response = self.client.post('/api/threads/', {'title': 'New'}, format='json')
        self.assertIn(response.status_code, (401, 403))

    def test_list_threads(self):
        response = self.client.get('/api/threads/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['results'][0]['title'], 'Thread')

    def test_thread_detail_with_reactions(self):
        reply = Post.objects.create(thread=self.thread, author=self.moderator, parent=self.post, content='reply')
        Reaction.objects.create(post=self.post, user=self.user, type='love')
        self.client.force_authenticate(self.user)

        response = self.client.get(f'/api/threads/{self.thread.id}/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['post_count'], 2)
        root = response.data['posts'][0]
        self.assertEqual(root['reactions']['love'], 1)
        self.assertEqual(root['user_reactions'], ['love'])
        self.assertEqual(root['replies'][0]['post']['id'], reply.id)

    def test_thread_detail_missing(self):
        response = self.client.get('/api/threads/999999/')
        self.assertEqual(response.status_code, 404)

    def test_toggle_reaction(self):
        self.client.force_authenticate(self.user)
        url = f'/api/posts/{self.post.id}/reactions/toggle/'

        first = self.client.post(url, {'type': 'insightful'}, format='json')
        second = self.client.post(url, {'type': 'insightful'}, format='json')

        self.assertTrue(first.data['applied'])
        self.assertEqual(first.data['reactions']['insightful'], 1)
        self.assertFalse(second.data['applied'])
        self.assertEqual(second.data['reactions']['insightful'], 0)

    def test_toggle_reaction_requires_login(self):
        response = self.client.post(
            f'/api/posts/{self.post.id}/reactions/toggle/', {'type': 'like'}, format='json'
        )
        self.assertIn(response.status_code, (401, 403))
        self.assertEqual(Reaction.objects.count(), 0)

    def test_toggle_reaction_bad_type(self):
        self.client.force_authenticate(self.user)
        response = self.client.post(
            f'/api/posts/{self.post.id}/reactions/toggle/', {'type': 'angry'}, format='json'
        )
        self.assertEqual(response.status_code, 400)

    def test_post_reactions(self):
        Reaction.objects.create(post=self.post, user=self.moderator, type='like')

        response = self.client.get(f'/api/posts/{self.post.id}/reactions/')

        self.assertEqual(response.data['reactions'], {'like': 1, 'love': 0, 'insightful': 0})
        self.assertEqual(response.data['user_reactions'], [])

    def test_report_and_review(self):
        self.client.force_authenticate(self.user)
        report = self.client.post(f'/api/posts/{self.post.id}/flags/', {'reason': 'spam'}, format='json')
        self.assertEqual(report.status_code, 201)
        flag_id = report.data['id']

        self.client.force_authenticate(self.moderator)
        url = f'/api/flags/{flag_id}/review/'
        first = self.client.post(url, {'decision': 'removed'}, format='json')
        second = self.client.post(url, {'decision': 'approved'}, format='json')

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.data['status'], 'removed')
        self.assertIsNotNone(first.data['reviewed_at'])
        self.assertEqual(second.status_code, 409)
        self.assertEqual(Flag.objects.get(id=flag_id).status, Flag.Status.REMOVED)

    def test_review_requires_staff(self):
        flag = Flag.objects.create(post=self.post, reason='r')
        self.client.force_authenticate(self.user)

        response = self.client.post(f'/api/flags/{flag.id}/review/', {'decision': 'removed'}, format='json')

        self.assertEqual(response.status_code, 403)
        self.assertEqual(Flag.objects.get(id=flag.id).status, Flag.Status.PENDING)

    def test_review_unknown_flag(self):
        self.client.force_authenticate(self.moderator)
        response = self.client.post('/api/flags/999999/review/', {'decision': 'removed'}, format='json')
        self.assertEqual(response.status_code, 404)

    def test_flag_queue_search_and_status(self):
        Flag.objects.create(post=self.post, reason='spam link')
        Flag.objects.create(post=self.post, reason='off topic', status=Flag.Status.APPROVED)
        self.client.force_authenticate(self.moderator)

        by_reason = self.client.get('/api/flags/', {'search': 'SPAM'})
        by_status = self.client.get('/api/flags/', {'status': 'approved'})
        by_author = self.client.get('/api/flags/', {'search': 'user'})
        bad_status = self.client.get('/api/flags/', {'status': 'closed'})

        self.assertEqual([f['reason'] for f in by_reason.data['results']], ['spam link'])
        self.assertEqual([f['reason'] for f in by_status.data['results']], ['off topic'])
        self.assertEqual(len(by_author.data['results']), 2)
        self.assertEqual(bad_status.status_code, 400)

    def test_dashboard(self):
        Flag.objects.create(post=self.post, reason='r')
        self.client.force_authenticate(self.moderator)

        response = self.client.get('/api/dashboard/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total_threads'], 1)
        self.assertEqual(response.data['flagged_by_status']['pending'], 1)
        self.assertEqual(response.data['average_sentiment'], 0.0)
        self.assertEqual(response.data['top_toxic_threads'][0]['title'], 'Thread')

    def test_dashboard_requires_staff(self):
        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.get('/api/dashboard/').status_code, 403)

    def test_feed_trusted_tab(self):
        newbie = make_user('newbie', trust=5)
        Post.objects.create(thread=self.thread, author=newbie, content='low trust')
        Post.objects.create(thread=self.thread, author=newbie, parent=self.post, content='a reply')

        everyone = self.client.get('/api/feed/')
        trusted = self.client.get('/api/feed/', {'tab': 'trusted'})

        self.assertEqual(len(everyone.data['results']), 2)
        self.assertEqual([p['content'] for p in trusted.data['results']], ['root post'])

    def test_trust_endpoint(self):
        response = self.client.get(f'/api/users/{self.user.id}/trust/')

        self.assertEqual(response.data['trust_score'], 75)
        self.assertEqual(response.data['band'], 'high')

    @override_settings(DEBUG=True)
    def test_dev_login_creates_profile(self):
        response = self.client.post('/api/auth/dev-login/', {'username': 'fresh'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['created'])
        self.assertTrue(Profile.objects.filter(user__username='fresh').exists())

        whoami = self.client.get('/api/auth/whoami/')
        self.assertTrue(whoami.data['authenticated'])
        self.assertEqual(whoami.data['username'], 'fresh')

    def test_dev_login_disabled_outside_debug(self):
        response = self.client.post('/api/auth/dev-login/', {'username': 'fresh'}, format='json')
        self.assertEqual(response.status_code, 404)
        self.assertFalse(User.objects.filter(username='fresh').exists())
