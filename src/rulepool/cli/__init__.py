"""rulepool command-line interface."""

from rulepool.cli.app import app

__all__ = ["app"]
