"""
DRF Serializers
===============

Serializers handle:
1. Validation of incoming data
2. Transformation of model instances to JSON
3. Nested reply tree serialization

DESIGN DECISIONS:
-----------------
1. Separate serializers for input vs output
2. Moderation fields (toxicity_score, is_flagged, sentiment) are always
   read-only; only the moderation engine writes them
3. Reply trees are pre-built by queries.build_post_tree() and passed in
"""

from rest_framework import serializers
from django.contrib.auth.models import User

from .models import Flag, Post, Reaction, Thread, POST_MAX_LENGTH


class UserSerializer(serializers.ModelSerializer):
    """Minimal user representation for embedding in other objects."""
    trust_score = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'trust_score']
        read_only_fields = fields

    def get_trust_score(self, obj):
        profile = getattr(obj, 'profile', None)
        return profile.trust_score if profile else 0


class ThreadSerializer(serializers.ModelSerializer):
    created_by = UserSerializer(read_only=True)

    class Meta:
        model = Thread
        fields = [
            'id',
            'title',
            'description',
            'created_by',
            'created_at',
            'toxicity_score',
            'sentiment_score',
            'summary'
        ]
        read_only_fields = fields


class ThreadCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=300)
    description = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError("Title cannot be empty.")
        return value.strip()


class PostSerializer(serializers.ModelSerializer):
    author = UserSerializer(read_only=True)

    class Meta:
        model = Post
        fields = [
            'id',
            'thread',
            'parent',
            'author',
            'content',
            'sentiment',
            'toxicity_score',
            'is_flagged',
            'created_at'
        ]
        read_only_fields = fields


class PostCreateSerializer(serializers.Serializer):
    """
    Body of POST /api/posts/.

    Validates that:
    1. Author and thread exist
    2. Parent post (if provided) belongs to the same thread
    3. Content is not empty
    """
    author_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.all())
    thread_id = serializers.PrimaryKeyRelatedField(queryset=Thread.objects.all())
    parent_id = serializers.PrimaryKeyRelatedField(
        queryset=Post.objects.all(),
        required=False,
        allow_null=True,
        default=None
    )
    # Stored as sent; only the emptiness check ignores whitespace
    content = serializers.CharField(max_length=POST_MAX_LENGTH, trim_whitespace=False)

    def validate_content(self, value):
        if not value.strip():
            raise serializers.ValidationError("Post cannot be empty.")
        return value

    def validate(self, attrs):
        parent = attrs.get('parent_id')
        thread = attrs['thread_id']

        if parent and parent.thread_id != thread.id:
            raise serializers.ValidationError({
                'parent_id': 'Parent post must belong to the same thread.'
            })

        return attrs


class PostTreeSerializer(serializers.Serializer):
    """
    Serializer for a node of the reply tree built by build_post_tree().

    Structure:
    {
        "post": { ...post data... },
        "reactions": {"like": 0, "love": 2, "insightful": 1},
        "user_reactions": ["love"],
        "replies": [ ...nested PostTreeSerializer... ]
    }
    """
    post = PostSerializer()
    reactions = serializers.DictField(child=serializers.IntegerField())
    user_reactions = serializers.SerializerMethodField()
    replies = serializers.SerializerMethodField()

    def get_user_reactions(self, obj):
        return sorted(obj['user_reactions'])

    def get_replies(self, obj):
        return PostTreeSerializer(obj['replies'], many=True).data


class ThreadDetailSerializer(serializers.Serializer):
    thread = ThreadSerializer()
    posts = PostTreeSerializer(many=True)
    post_count = serializers.IntegerField()


class ReactionToggleSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=Reaction.Type.choices)


class FlagSerializer(serializers.ModelSerializer):
    flagged_by = UserSerializer(read_only=True)
    post_content = serializers.CharField(source='post.content', read_only=True)
    post_author = serializers.CharField(source='post.author.username', read_only=True)
    toxicity_score = serializers.FloatField(source='post.toxicity_score', read_only=True)

    class Meta:
        model = Flag
        fields = [
            'id',
            'post',
            'post_content',
            'post_author',
            'toxicity_score',
            'flagged_by',
            'reason',
            'ai_confidence',
            'status',
            'created_at',
            'reviewed_at'
        ]
        read_only_fields = fields


class FlagReportSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class FlagReviewSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(
        choices=[Flag.Status.APPROVED, Flag.Status.REMOVED]
    )


class ToxicThreadSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    title = serializers.CharField()
    toxicity_score = serializers.FloatField(allow_null=True)
    created_at = serializers.DateTimeField()


class DashboardSerializer(serializers.Serializer):
    total_threads = serializers.IntegerField()
    total_posts = serializers.IntegerField()
    total_users = serializers.IntegerField()
    average_sentiment = serializers.FloatField()
    flagged_by_status = serializers.DictField(child=serializers.IntegerField())
    top_toxic_threads = ToxicThreadSerializer(many=True)
    lowest_trust_users = serializers.ListField(child=serializers.DictField())
    recent_summaries = serializers.ListField(child=serializers.DictField())
    recent_thread_signals = serializers.ListField(child=serializers.DictField())
