"""
Board App Configuration
"""
from django.apps import AppConfig


class BoardConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'board'

    def ready(self):
        # Import signals when app is ready
        import board.signals  # noqa
