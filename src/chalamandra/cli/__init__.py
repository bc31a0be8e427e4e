"""Command line interface for Chalamandra."""

from chalamandra.cli.main import cli, main

__all__ = ["cli", "main"]
