"""
WSGI config for threadsense project.
"""
import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'threadsense.settings')
application = get_wsgi_application()
