"""Command-line interface for tinker-runner."""
