"""Main CLI entry point for nunuctl."""

from __future__ import annotations

import click

from nunuctl import __version__
from nunuctl.cli.config_cmd import config
from nunuctl.cli.upload import upload

# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="nunuctl")
def cli() -> None:
    """nunuctl - Upload build artifacts to Nunu.ai.

    Large files are split into parts and uploaded concurrently; several
    files can be uploaded in one run.

    Get started:

      nunuctl config init                  # Create config file

      export NUNU_API_TOKEN=...            # Provide the API token

      nunuctl upload game.exe -n Nightly   # Upload a build

    Use --help on any command for more information.
    """
    pass


# =============================================================================
# Register Commands
# =============================================================================

cli.add_command(config)
cli.add_command(upload)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
