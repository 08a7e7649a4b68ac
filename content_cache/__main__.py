"""Main entry point for the content cache package."""

from content_cache.cli import cli

if __name__ == "__main__":
    cli()
