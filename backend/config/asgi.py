# config/asgi.py
import os
from django.core.asgi import get_asgi_application

# Plain HTTP only; every driver interaction is request/response
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

application = get_asgi_application()
