"""Common CLI utilities, decorators, and helpers."""

from __future__ import annotations

import sys
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

import click

from nunuctl.core.client import NunuClient
from nunuctl.core.config import Config
from nunuctl.core.exceptions import (
    ConfigurationError,
    NunuCtlError,
    ValidationError,
)
from nunuctl.core.logging import setup_logging
from nunuctl.core.output import OutputFormat, print_error
from nunuctl.uploaders.constants import EXIT_FAILURE, EXIT_SUCCESS, EXIT_USAGE_ERROR

F = TypeVar("F", bound=Callable[..., Any])


# =============================================================================
# Exit Codes
# =============================================================================


class ExitCode:
    """Standard exit codes."""

    SUCCESS = EXIT_SUCCESS
    FAILURE = EXIT_FAILURE
    USAGE_ERROR = EXIT_USAGE_ERROR


# =============================================================================
# Context Object
# =============================================================================


class Context:
    """CLI context object passed to commands."""

    def __init__(self) -> None:
        self.config: Optional[Config] = None
        self.client: Optional[NunuClient] = None
        self.profile_name: Optional[str] = None
        self.output_format: OutputFormat = OutputFormat.TABLE
        self.quiet: bool = False
        self.verbose: bool = False

    def get_client(
        self,
        *,
        token: Optional[str] = None,
        project_id: Optional[str] = None,
        api_url: Optional[str] = None,
    ) -> NunuClient:
        """Get or create the API client.

        Explicit values override the selected profile, which already carries
        the ``NUNU_*`` environment overrides.

        Raises:
            ConfigurationError: If the profile is unknown or credentials are missing.
        """
        if self.client is not None:
            return self.client

        if self.config is None:
            self.config = Config.load()

        profile = self.config.get_profile(self.profile_name)
        credentials = self.config.resolve_credentials(
            self.profile_name,
            token=token,
            project_id=project_id,
            api_url=api_url,
        )
        self.client = NunuClient(
            credentials=credentials,
            timeout=profile.timeout,
            verify_ssl=profile.verify_ssl,
        )
        return self.client


pass_context = click.make_pass_decorator(Context, ensure=True)


# =============================================================================
# Global Options
# =============================================================================


def global_options(f: F) -> F:
    """Add global options to a command."""

    @click.option(
        "--profile",
        envvar="NUNU_PROFILE",
        help="Config profile to use",
    )
    @click.option(
        "--output",
        "-o",
        "output_format",
        type=click.Choice(["json", "table"]),
        default="table",
        help="Output format",
    )
    @click.option(
        "--quiet",
        "-q",
        is_flag=True,
        help="Only show errors (no progress)",
    )
    @click.option(
        "--verbose",
        "-v",
        is_flag=True,
        help="Enable verbose output",
    )
    @pass_context
    @wraps(f)
    def wrapper(
        ctx: Context,
        profile: Optional[str],
        output_format: str,
        quiet: bool,
        verbose: bool,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Populate context from global options and invoke the command."""
        ctx.profile_name = profile
        ctx.output_format = OutputFormat.from_string(output_format)
        ctx.quiet = quiet
        ctx.verbose = verbose

        setup_logging(quiet=quiet, verbose=verbose)

        return f(ctx, *args, **kwargs)

    return wrapper  # type: ignore


# =============================================================================
# Error Handling
# =============================================================================


def handle_errors(f: F) -> F:
    """Handle common errors and convert them to an error line and exit code."""

    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        """Capture errors and exit with consistent messaging."""
        try:
            return f(*args, **kwargs)
        except (ConfigurationError, ValidationError) as e:
            print_error(str(e))
            sys.exit(ExitCode.USAGE_ERROR)
        except NunuCtlError as e:
            print_error(str(e))
            sys.exit(ExitCode.FAILURE)
        except click.ClickException:
            raise
        except Exception as e:
            print_error(f"Unexpected error: {e}")
            sys.exit(ExitCode.FAILURE)

    return wrapper  # type: ignore
