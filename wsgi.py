"""
WSGI Entry Point for Gunicorn

Run with:
  gunicorn wsgi:app

The Flask application is built by create_app() in app_init.py, using the
configuration selected by FLASK_ENV.
"""

from app_init import create_app

app = create_app()
