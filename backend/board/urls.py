"""
Board App URL Configuration
"""
from django.urls import path
from .views import (
    FeedView,
    ThreadListCreateView,
    ThreadDetailView,
    ThreadSummarizeView,
    PostCreateView,
    PostSummarizeView,
    PostReactionsView,
    ReactionToggleView,
    PostReportView,
    FlagListView,
    FlagReviewView,
    DashboardView,
    TrustScoreView,
    DevLoginView,
    WhoAmIView
)

urlpatterns = [
    # Feed
    path('feed/', FeedView.as_view(), name='feed'),

    # Threads
    path('threads/', ThreadListCreateView.as_view(), name='thread-list'),
    path('threads/<int:thread_id>/', ThreadDetailView.as_view(), name='thread-detail'),
    path('threads/<int:thread_id>/summarize/', ThreadSummarizeView.as_view(), name='thread-summarize'),

    # Posts
    path('posts/', PostCreateView.as_view(), name='post-create'),
    path('posts/<int:post_id>/summarize/', PostSummarizeView.as_view(), name='post-summarize'),
    path('posts/<int:post_id>/reactions/', PostReactionsView.as_view(), name='post-reactions'),
    path('posts/<int:post_id>/reactions/toggle/', ReactionToggleView.as_view(), name='reaction-toggle'),
    path('posts/<int:post_id>/flags/', PostReportView.as_view(), name='post-report'),

    # Moderation
    path('flags/', FlagListView.as_view(), name='flag-list'),
    path('flags/<int:flag_id>/review/', FlagReviewView.as_view(), name='flag-review'),
    path('dashboard/', DashboardView.as_view(), name='dashboard'),

    # Trust
    path('users/<int:user_id>/trust/', TrustScoreView.as_view(), name='trust-score'),

    # Auth (development)
    path('auth/dev-login/', DevLoginView.as_view(), name='dev-login'),
    path('auth/whoami/', WhoAmIView.as_view(), name='whoami'),
]
