"""
WSGI / Flask CLI entry point.

Usage:
    flask --app wsgi seed-catalog
    flask --app wsgi db upgrade      # Flask-Migrate, once migrations/ exists
    gunicorn wsgi:app
"""

from app import create_app

app = create_app()
