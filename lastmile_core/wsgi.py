"""
WSGI config for LASTMILE project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'lastmile_core.settings')

application = get_wsgi_application()
