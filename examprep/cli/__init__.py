"""Command line interface for the mastery engine."""
