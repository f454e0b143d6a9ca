"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi run
    flask --app wsgi db upgrade
    flask --app wsgi seed-catalog
"""

from squads_virtuais import create_app

app = create_app()
