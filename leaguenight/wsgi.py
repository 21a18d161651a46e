"""WSGI entrypoint for Gunicorn and similar servers."""
import os

from leaguenight.app import create_app

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)
