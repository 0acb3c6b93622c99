"""Allow ``python -m agentstream``."""

from agentstream.cli import app

app()
