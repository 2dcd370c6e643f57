"""
WSGI entrypoint for the outpatient API.

Used when websockets are not needed (e.g. gunicorn behind a proxy that
routes ``/ws/`` to the ASGI server).
"""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hospital.settings')

application = get_wsgi_application()
