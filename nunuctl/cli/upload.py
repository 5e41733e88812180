"""Upload command for nunuctl."""

from __future__ import annotations

import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

import click

from nunuctl.cli.common import Context, ExitCode, global_options, handle_errors
from nunuctl.core.exceptions import ValidationError
from nunuctl.core.output import (
    OutputFormat,
    create_transfer_progress,
    print_json,
    print_success,
    print_table,
    print_warning,
)
from nunuctl.models.progress import BatchResult, ProgressSnapshot
from nunuctl.models.target import BuildPlatform, DeletionPolicy
from nunuctl.services.uploads import UploadOptions, UploadService
from nunuctl.uploaders.cancellation import CancellationController
from nunuctl.uploaders.common import build_targets, collect_build_files

PLATFORM_CHOICES = [p.value for p in BuildPlatform]
POLICY_CHOICES = [p.value for p in DeletionPolicy]

STATE_STYLES = {
    "completed": "green",
    "failed": "red",
    "aborted": "yellow",
}


@click.command("upload")
@click.argument("files", nargs=-1, required=True)
@click.option("--token", "-t", help="API token (or NUNU_API_TOKEN)")
@click.option("--project-id", "-p", help="Project ID (or NUNU_PROJECT_ID)")
@click.option("--api-url", help="API base URL (or NUNU_API_URL)")
@click.option(
    "--name",
    "-n",
    required=True,
    help="Build name; used as a template when uploading several files",
)
@click.option(
    "--platform",
    type=click.Choice(PLATFORM_CHOICES, case_sensitive=False),
    help="Target platform (inferred from the file extension if omitted)",
)
@click.option("--description", "-d", help="Build description")
@click.option("--tag", "tags", multiple=True, help="Build tag (repeatable)")
@click.option(
    "--details",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file with build metadata to attach",
)
@click.option(
    "--upload-timeout",
    type=click.IntRange(1, 1440),
    help="Server-side upload timeout in minutes (1-1440)",
)
@click.option(
    "--auto-delete",
    is_flag=True,
    help="Delete old builds automatically if the storage quota is exceeded",
)
@click.option(
    "--deletion-policy",
    type=click.Choice(POLICY_CHOICES, case_sensitive=False),
    help="Which builds to delete with --auto-delete (default: least_recent)",
)
@click.option("--force-multipart", is_flag=True, help="Use multipart upload regardless of size")
@click.option(
    "--parallel",
    type=click.IntRange(1, 32),
    help="Parallel uploads/parts (1-32, default from profile: 4)",
)
@global_options
@handle_errors
def upload(
    ctx: Context,
    files: tuple[str, ...],
    token: Optional[str],
    project_id: Optional[str],
    api_url: Optional[str],
    name: str,
    platform: Optional[str],
    description: Optional[str],
    tags: tuple[str, ...],
    details: Optional[str],
    upload_timeout: Optional[int],
    auto_delete: bool,
    deletion_policy: Optional[str],
    force_multipart: bool,
    parallel: Optional[int],
) -> None:
    """Upload build artifacts.

    FILES are paths or glob patterns. Each file becomes its own build; with
    several files the build name is "NAME - <filename>".

    Example:
        nunuctl upload game.exe -n "Nightly"
        nunuctl upload "dist/*.apk" -n "Release 1.2" --parallel 8
        nunuctl upload build.zip -n "Build" --platform windows --auto-delete
    """
    if deletion_policy and not auto_delete:
        raise click.UsageError("--deletion-policy requires --auto-delete")

    try:
        paths = collect_build_files(files)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    targets = build_targets(
        paths,
        name,
        platform=BuildPlatform.from_string(platform) if platform else None,
    )

    client = ctx.get_client(token=token, project_id=project_id, api_url=api_url)
    profile = ctx.config.get_profile(ctx.profile_name)

    options = UploadOptions(
        parallel=parallel or profile.parallel,
        force_multipart=force_multipart,
        upload_timeout=upload_timeout,
        auto_delete=auto_delete,
        deletion_policy=DeletionPolicy.from_string(deletion_policy or "least_recent"),
        description=description,
        tags=list(tags),
        details=_load_details(details),
    )

    service = UploadService(client)
    show_progress = ctx.output_format == OutputFormat.TABLE and not ctx.quiet

    with client, CancellationController() as controller:
        if show_progress:
            with create_transfer_progress() as progress:
                task_ids: dict[str, Any] = {}

                def progress_callback(snapshot: ProgressSnapshot) -> None:
                    """Mirror aggregator snapshots into the Rich progress bars."""
                    for session_id, sp in snapshot.sessions.items():
                        if session_id not in task_ids:
                            task_ids[session_id] = progress.add_task(
                                sp.name, total=sp.total_bytes
                            )
                        progress.update(task_ids[session_id], completed=sp.bytes_sent)

                batch = service.upload_batch(
                    targets,
                    options,
                    controller=controller,
                    progress_callback=progress_callback,
                )
        else:
            batch = service.upload_batch(targets, options, controller=controller)

    _print_batch(ctx, batch)
    if batch.exit_code != ExitCode.SUCCESS:
        sys.exit(batch.exit_code)


def _load_details(path: Optional[str]) -> Optional[dict[str, Any]]:
    if not path:
        return None
    try:
        data = json.loads(Path(path).read_text())
    except (OSError, ValueError) as e:
        raise ValidationError(
            f"Cannot read details file: {e}", field="details", value=path
        ) from e
    if not isinstance(data, dict):
        raise ValidationError("Details file must contain a JSON object", field="details")
    return data


def _print_batch(ctx: Context, batch: BatchResult) -> None:
    if ctx.output_format == OutputFormat.JSON:
        print_json(
            {
                "success": batch.success,
                "cancelled": batch.cancelled,
                "exit_code": batch.exit_code,
                "duration": round(batch.duration, 2),
                "results": [asdict(r) for r in batch.results],
            }
        )
        return

    if ctx.quiet:
        for result in batch.succeeded:
            click.echo(result.build_id)
        return

    rows = [
        {
            "file": Path(r.file_path).name,
            "name": r.name,
            "state": r.state,
            "build_id": r.build_id or "-",
            "error": r.error_message or "",
        }
        for r in batch.results
    ]
    print_table(
        rows,
        ["file", "name", "state", "build_id", "error"],
        title="Upload results",
        column_labels={"build_id": "Build ID"},
        styles=STATE_STYLES,
    )

    if batch.cancelled:
        print_warning(f"Upload cancelled; {len(batch.aborted)} upload(s) aborted")
    elif batch.success:
        print_success(
            f"Uploaded {len(batch.succeeded)} file(s) in {batch.duration:.1f}s "
            f"({batch.throughput_mbps:.1f} MB/s)"
        )
    else:
        print_warning(f"{len(batch.failed)} of {len(batch.results)} file(s) failed")
