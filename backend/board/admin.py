"""
Django Admin Configuration for Board Models
"""
from django.contrib import admin
from .models import Flag, Post, Profile, Reaction, Thread


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ['username', 'trust_score', 'user']
    search_fields = ['username']
    # trust_score is maintained by staff; everything else follows the user
    readonly_fields = ['user', 'username']


@admin.register(Thread)
class ThreadAdmin(admin.ModelAdmin):
    list_display = ['title', 'created_by', 'toxicity_score', 'sentiment_score', 'created_at']
    list_filter = ['created_at']
    search_fields = ['title', 'description', 'created_by__username']
    readonly_fields = ['created_by', 'created_at', 'toxicity_score']


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = ['id', 'thread', 'author', 'parent', 'sentiment', 'toxicity_score', 'is_flagged', 'created_at']
    list_filter = ['is_flagged', 'sentiment', 'created_at']
    search_fields = ['content', 'author__username']
    readonly_fields = ['sentiment', 'toxicity_score', 'created_at']


@admin.register(Flag)
class FlagAdmin(admin.ModelAdmin):
    list_display = ['id', 'post', 'flagged_by', 'reason', 'ai_confidence', 'status', 'created_at', 'reviewed_at']
    list_filter = ['status', 'created_at']
    search_fields = ['reason', 'post__author__username']
    # Decisions go through review_flag() so the one-shot rule holds
    readonly_fields = ['post', 'flagged_by', 'reason', 'ai_confidence',
                       'status', 'created_at', 'reviewed_at']

    def has_add_permission(self, request):
        return False


@admin.register(Reaction)
class ReactionAdmin(admin.ModelAdmin):
    list_display = ['user', 'post', 'type', 'created_at']
    list_filter = ['type', 'created_at']
    search_fields = ['user__username']
