"""
ThreadSense URL Configuration
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


def api_root(request):
    """Root endpoint with API information."""
    return JsonResponse({
        'message': 'ThreadSense API Server',
        'version': '1.0',
        'endpoints': {
            'feed': '/api/feed/',
            'threads': '/api/threads/',
            'posts': '/api/posts/',
            'reactions': '/api/posts/<id>/reactions/',
            'flags': '/api/flags/',
            'dashboard': '/api/dashboard/',
            'auth': '/api/auth/',
        },
        'admin': '/admin/',
    })


urlpatterns = [
    path('', api_root, name='api-root'),
    path('admin/', admin.site.urls),
    path('api/', include('board.urls')),
]
