"""
WSGI entry point.

Usage:
    flask --app wsgi run
    flask --app wsgi seed-demo-workspace
    gunicorn wsgi:app
"""

from roleclarity import create_app

app = create_app()
