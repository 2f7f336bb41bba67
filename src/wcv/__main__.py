"""Entry point for `python -m wcv`."""

from wcv.cli import app

app()
