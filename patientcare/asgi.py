"""
ASGI config for the PatientCare project.

Only the HTTP protocol is served; the API has no websocket routes.
"""
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "patientcare.settings")

from django.core.asgi import get_asgi_application  # noqa: E402

application = get_asgi_application()
