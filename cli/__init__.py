"""CLI package: command-line interface."""
