# Overview: WSGI entry point for the Flask CLI and production servers.

from khata import create_app

app = create_app()
