"""
WSGI / Flask CLI entry point.

Usage:
    FLASK_APP=wsgi.py flask seed-governance
    FLASK_APP=wsgi.py flask db migrate -m "description"
    gunicorn wsgi:app
"""

from esg_governance import create_app

app = create_app()
