"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db init       # first time only (creates migrations/ env)
    flask db migrate -m "description"
    flask db upgrade
    flask expire-shadows
"""

from reporting import create_app

app = create_app()
