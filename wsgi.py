"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi add-member chair@example.org "Dr. Chair" --chair
    flask --app wsgi issue-token <member-id>
"""

from app import create_app

app = create_app()
