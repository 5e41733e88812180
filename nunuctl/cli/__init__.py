"""Command-line interface for nunuctl."""
