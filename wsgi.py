"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db migrate -m "description"
    flask --app wsgi cleanup-activity-logs
"""

from quality_indicators import create_app

app = create_app()
