"""Config commands for nunuctl."""

from __future__ import annotations

from typing import Optional

import click

from nunuctl.cli.common import ExitCode, handle_errors
from nunuctl.core.config import CONFIG_FILE, DEFAULT_API_URL, Config, Profile
from nunuctl.core.output import OutputFormat, print_error, print_json, print_success, print_table
from nunuctl.core.validation import validate_parallel, validate_server_url


@click.group()
def config() -> None:
    """Manage nunuctl configuration."""
    pass


@config.command("init")
@click.option("--project-id", prompt="Project ID", help="Nunu project ID")
@click.option("--api-url", default=DEFAULT_API_URL, show_default=True, help="API base URL")
@click.option("--profile", default="default", help="Profile name")
@click.option("--parallel", type=int, default=4, show_default=True, help="Default parallelism")
@click.option("--force", is_flag=True, help="Overwrite an existing profile")
@handle_errors
def config_init(
    project_id: str, api_url: str, profile: str, parallel: int, force: bool
) -> None:
    """Create or update the configuration file with a profile.

    The API token is never written to disk; pass it with --token or set
    NUNU_API_TOKEN.

    Example:
        nunuctl config init --project-id my-project
    """
    api_url = validate_server_url(api_url)
    parallel = validate_parallel(parallel)

    cfg = Config.load(CONFIG_FILE) if CONFIG_FILE.exists() else Config()
    existing = cfg.profiles.get(profile)
    if existing is not None and existing.project_id and not force:
        print_error(f"Profile '{profile}' already exists. Use --force to overwrite.")
        raise SystemExit(ExitCode.FAILURE)

    cfg.profiles[profile] = Profile(api_url=api_url, project_id=project_id, parallel=parallel)
    if len(cfg.profiles) == 1:
        cfg.default_profile = profile
    cfg.save(CONFIG_FILE)

    print_success(f"Configuration saved to {CONFIG_FILE}")


@config.command("show")
@click.option("--output", "-o", type=click.Choice(["json", "table"]), default="table")
@click.option("--profile", default=None, help="Only show this profile")
@handle_errors
def config_show(output: str, profile: Optional[str]) -> None:
    """Show the effective configuration (file plus environment)."""
    cfg = Config.load(CONFIG_FILE)
    names = [profile] if profile else list(cfg.profiles)
    profiles = {name: cfg.get_profile(name) for name in names}

    if OutputFormat.from_string(output) == OutputFormat.JSON:
        print_json(
            {
                "config_file": str(CONFIG_FILE),
                "default_profile": cfg.default_profile,
                "profiles": {
                    name: {**p.to_dict(), "api_token": "set" if p.api_token else None}
                    for name, p in profiles.items()
                },
            }
        )
        return

    rows = [
        {
            "profile": name + (" (default)" if name == cfg.default_profile else ""),
            "api_url": p.api_url,
            "project_id": p.project_id or "-",
            "token": "set" if p.api_token else "-",
            "parallel": p.parallel,
            "timeout": f"{p.timeout}s",
        }
        for name, p in profiles.items()
    ]
    print_table(
        rows,
        ["profile", "api_url", "project_id", "token", "parallel", "timeout"],
        title=f"Configuration ({CONFIG_FILE})",
        column_labels={"api_url": "API URL", "project_id": "Project ID"},
    )
