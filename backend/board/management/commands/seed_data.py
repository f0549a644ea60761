"""
Management command to seed the database with sample data.

Usage: python manage.py seed_data

Toxicity scores are assigned locally (no classifier calls) so seeding
works offline; posts above the threshold get a pending auto-flag just
like the live pipeline.
"""

import random
from datetime import timedelta
from django.core.management.base import BaseCommand
from django.contrib.auth.models import User
from django.utils import timezone

from board.models import Flag, Post, Profile, Reaction, Thread, AUTO_FLAG_REASON
from board.moderation import decide_flag
from board.sentiment import DEFAULT_POLICY
from board.services import toggle_reaction


class Command(BaseCommand):
    help = 'Seed the database with sample data for testing'

    def add_arguments(self, parser):
        parser.add_argument(
            '--users',
            type=int,
            default=10,
            help='Number of users to create'
        )
        parser.add_argument(
            '--threads',
            type=int,
            default=8,
            help='Number of threads to create'
        )
        parser.add_argument(
            '--posts',
            type=int,
            default=60,
            help='Number of posts to create'
        )
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding'
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            Reaction.objects.all().delete()
            Flag.objects.all().delete()
            Post.objects.all().delete()
            Thread.objects.all().delete()
            User.objects.filter(is_superuser=False).delete()

        self.stdout.write('Creating users...')
        users = self._create_users(options['users'])

        self.stdout.write('Creating threads...')
        threads = self._create_threads(users, options['threads'])

        self.stdout.write('Creating posts...')
        posts = self._create_posts(users, threads, options['posts'])

        self.stdout.write('Creating reactions...')
        self._create_reactions(users, posts)

        self.stdout.write(self.style.SUCCESS(
            f'Successfully created:\n'
            f'  - {len(users)} users\n'
            f'  - {len(threads)} threads\n'
            f'  - {len(posts)} posts ({Flag.objects.count()} flags)\n'
            f'  - Reactions'
        ))

    def _create_users(self, count):
        users = []
        for i in range(count):
            username = f'user{i+1}'
            user, _ = User.objects.get_or_create(
                username=username,
                defaults={'email': f'{username}@example.com'}
            )
            # Profile is created by the post_save signal
            Profile.objects.filter(user=user).update(trust_score=random.randint(10, 100))
            users.append(user)
        return users

    def _create_threads(self, users, count):
        titles = [
            "What's the best way to learn Python?",
            "Remote work: productivity boost or trap?",
            "Favorite sci-fi books of the decade",
            "Is this framework worth the hype?",
            "Weekly show and tell",
            "Ask me anything about databases",
            "The worst advice you ever got",
            "Tips for new moderators",
        ]
        threads = []
        for i in range(count):
            threads.append(Thread.objects.create(
                title=f"{random.choice(titles)} #{i+1}",
                description="Share your thoughts below.",
                created_by=random.choice(users),
                toxicity_score=round(random.uniform(0, 0.9), 2),
                sentiment_score=round(random.uniform(-1, 1), 2),
                created_at=timezone.now() - timedelta(hours=random.randint(0, 72))
            ))
        return threads

    def _create_posts(self, users, threads, count):
        texts = [
            ("Great point! I totally agree.", 0.05),
            ("Hmm, I'm not sure about this...", 0.1),
            ("Thanks for sharing, this is awesome.", 0.02),
            ("This is a terrible take and I hate it.", 0.45),
            ("Only an idiot would believe this, stupid thread.", 0.88),
            ("Can you elaborate on this?", 0.03),
            ("Interesting take, but have you considered the opposite?", 0.08),
        ]

        posts = []
        for i in range(count):
            thread = random.choice(threads)
            content, toxicity_score = random.choice(texts)

            # 30% chance of being a reply to an existing post in the same thread
            parent = None
            same_thread = [p for p in posts if p.thread_id == thread.id]
            if same_thread and random.random() < 0.3:
                parent = random.choice(same_thread)

            is_flagged = decide_flag(toxicity_score)
            post = Post.objects.create(
                thread=thread,
                parent=parent,
                author=random.choice(users),
                content=content,
                sentiment=DEFAULT_POLICY.analyze(content),
                toxicity_score=toxicity_score,
                is_flagged=is_flagged,
                created_at=timezone.now() - timedelta(hours=random.randint(0, 24))
            )
            if is_flagged:
                Flag.objects.create(
                    post=post,
                    reason=AUTO_FLAG_REASON,
                    ai_confidence=toxicity_score
                )
            posts.append(post)
        return posts

    def _create_reactions(self, users, posts):
        for post in posts:
            if random.random() < 0.6:
                for user in random.sample(users, k=min(3, len(users))):
                    reaction_type = random.choice(Reaction.Type.values)
                    toggle_reaction(post.id, user, reaction_type)
