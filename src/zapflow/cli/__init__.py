"""zapflow command-line interface."""

from zapflow.cli.app import app

__all__ = ["app"]
