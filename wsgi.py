"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db upgrade
    flask db migrate -m "description"
    flask cleanup-sessions
"""

from fieldcapture import create_app

app = create_app()
