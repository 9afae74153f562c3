"""Command-line interface for kvspine."""
