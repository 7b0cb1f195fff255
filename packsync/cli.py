"""CLI interface for packsync."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import click

from .backend.local import LocalBackend
from .cli_progress import SyncProgressDisplay, render_tree
from .config import config
from .exceptions import ConfigError, PackSyncError
from .manifest import Manifest, parse_manifest
from .output import OutputFormatter
from .sync.diff import DiffFile, count_by_status
from .sync.events import SyncEvent
from .sync.exclusions import ExclusionStore
from .sync.orchestrator import SyncOrchestrator, SyncPhase, SyncSession
from .sync.progress import ProgressSink

logger = logging.getLogger(__name__)


def _make_backend(workers: Optional[int] = None) -> LocalBackend:
    backend = LocalBackend.from_config(config)
    if workers is not None:
        backend.thread_count = max(1, workers)
    return backend


def _status_counts(diff: list[DiffFile]) -> dict[str, int]:
    return {status.value: count for status, count in count_by_status(diff).items()}


def _print_plan(out: OutputFormatter, session: SyncSession, hide_unchanged: bool) -> None:
    manifest = session.manifest
    title = f"{manifest.package_name} {manifest.version}" if manifest else "Sync plan"
    out.print(render_tree(session.tree, title=title, hide_unchanged=hide_unchanged))
    counts = count_by_status(session.diff)
    summary = ", ".join(
        f"{count} {status.value}" for status, count in counts.items() if count
    )
    out.info(f"Plan: {summary or 'nothing to do'}")
    if session.notice:
        out.warning(session.notice)


def _session_summary(session: SyncSession) -> dict[str, Any]:
    return {
        "phase": session.phase.value,
        "manifestUrl": session.manifest_url,
        "targetDirectory": session.target_directory,
        "excluded": sorted(session.exclusions),
        "diff": [d.to_dict() for d in session.diff],
        "counts": _status_counts(session.diff),
        "overallProgress": session.overall_progress,
        "log": [
            {"level": entry.level.value, "message": entry.message}
            for entry in session.log
        ],
        "error": session.error,
        "notice": session.notice,
    }


async def _prepare_plan(
    orchestrator: SyncOrchestrator, url: str, target: str, exclude: tuple[str, ...]
) -> SyncSession:
    await orchestrator.load_manifest(url)
    if orchestrator.session.phase == SyncPhase.FAILED:
        return orchestrator.session
    await orchestrator.select_directory(target)
    if exclude and orchestrator.session.phase == SyncPhase.REVIEWING_PLAN:
        await orchestrator.add_exclusions(list(exclude))
    return orchestrator.session


def _check_overrides(no_hash_check: bool, no_size_check: bool) -> dict[str, Optional[bool]]:
    return {
        "hash_check_override": True if no_hash_check else None,
        "size_check_override": True if no_size_check else None,
    }


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="packsync")
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, verbose: bool) -> None:
    """PackSync - keep a local directory in sync with a package manifest."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("packsync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.argument("url")
@click.pass_context
def inspect(ctx: Any, url: str) -> None:
    """Fetch and validate a manifest, then print a summary."""
    out: OutputFormatter = ctx.obj["out"]

    async def run() -> Manifest:
        backend = _make_backend()
        try:
            return parse_manifest(await backend.fetch_manifest_text(url))
        finally:
            await backend.close()

    try:
        manifest = asyncio.run(run())
    except PackSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(manifest.to_dict())
        return

    archives = sum(1 for f in manifest.files if f.is_archive)
    out.print_summary(
        "Manifest",
        [
            ("Package", manifest.package_name),
            ("Version", manifest.version),
            ("Files", str(len(manifest.files))),
            ("Archives", str(archives)),
            ("Total size", out.format_size(manifest.total_size)),
            ("Top-level directories", ", ".join(sorted(manifest.top_level_dirs())) or "-"),
        ],
    )
    if manifest.description:
        out.info("")
        out.info(manifest.description)


@main.command()
@click.argument("url")
@click.argument("target", type=click.Path(file_okay=False))
@click.option("--exclude", "-e", multiple=True, help="Exclude a relative path (repeatable)")
@click.option("--no-hash-check", is_flag=True, help="Compare files by size instead of hash")
@click.option("--no-size-check", is_flag=True, help="With --no-hash-check, treat existing files as unchanged")
@click.option("--all", "show_all", is_flag=True, help="Also list unchanged files")
@click.pass_context
def plan(
    ctx: Any,
    url: str,
    target: str,
    exclude: tuple[str, ...],
    no_hash_check: bool,
    no_size_check: bool,
    show_all: bool,
) -> None:
    """Show what a sync of URL into TARGET would change."""
    out: OutputFormatter = ctx.obj["out"]

    async def run() -> SyncSession:
        backend = _make_backend()
        orchestrator = SyncOrchestrator(
            backend, settings=config, **_check_overrides(no_hash_check, no_size_check)
        )
        try:
            return await _prepare_plan(orchestrator, url, target, exclude)
        finally:
            await backend.close()

    try:
        session = asyncio.run(run())
    except PackSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(_session_summary(session))
    if session.phase == SyncPhase.FAILED:
        out.error(session.error or "Failed to compute plan")
        ctx.exit(1)
    if not out.json_output:
        _print_plan(out, session, hide_unchanged=not show_all)


@main.command()
@click.argument("url")
@click.argument("target", type=click.Path(file_okay=False))
@click.option("--exclude", "-e", multiple=True, help="Exclude a relative path (repeatable)")
@click.option("--yes", "-y", is_flag=True, help="Start without asking for confirmation")
@click.option(
    "--workers",
    "-j",
    type=click.IntRange(min=1),
    default=None,
    help="Number of concurrent downloads (default: configured thread_count)",
)
@click.option("--no-hash-check", is_flag=True, help="Compare files by size instead of hash")
@click.option("--no-size-check", is_flag=True, help="With --no-hash-check, treat existing files as unchanged")
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.pass_context
def sync(
    ctx: Any,
    url: str,
    target: str,
    exclude: tuple[str, ...],
    yes: bool,
    workers: Optional[int],
    no_hash_check: bool,
    no_size_check: bool,
    no_progress: bool,
) -> None:
    """Synchronize TARGET with the manifest at URL."""
    out: OutputFormatter = ctx.obj["out"]

    async def run() -> SyncSession:
        backend = _make_backend(workers)
        orchestrator = SyncOrchestrator(
            backend, settings=config, **_check_overrides(no_hash_check, no_size_check)
        )
        try:
            session = await _prepare_plan(orchestrator, url, target, exclude)
            if session.phase != SyncPhase.REVIEWING_PLAN:
                return session

            if not out.json_output:
                _print_plan(out, session, hide_unchanged=True)
            if not yes and not click.confirm("Start download?", default=True):
                out.warning("Sync cancelled.")
                return session

            if no_progress or out.quiet or out.json_output:
                await orchestrator.start_download()
            else:
                with SyncProgressDisplay(out.console) as display:
                    remove = orchestrator.add_observer(
                        lambda s: display.update(s.progress)
                    )
                    try:
                        await orchestrator.start_download()
                    finally:
                        remove()
            return orchestrator.session
        finally:
            await backend.close()

    try:
        session = asyncio.run(run())
    except PackSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(_session_summary(session))

    if session.phase == SyncPhase.FAILED:
        out.error(session.error or "Sync failed")
        ctx.exit(1)

    if session.phase == SyncPhase.COMPLETED:
        errors = session.progress.error_count
        if errors:
            out.warning(f"Sync completed with {errors} failed files")
            for entry in session.log:
                if entry.is_error:
                    out.warning(entry.message)
        else:
            out.success(f"✓ Sync completed ({session.progress.success_count} files updated)")


@main.group()
def exclusions() -> None:
    """Manage the persisted exclusion list of a target directory."""


def _run_exclusion_edit(
    ctx: Any, target: str, edit, verb: str
) -> Optional[list[str]]:
    out: OutputFormatter = ctx.obj["out"]

    async def run() -> list[str]:
        backend = _make_backend()
        store = ExclusionStore(backend)
        await store.load(target)
        if store.last_error:
            raise PackSyncError(store.last_error)
        if edit is not None:
            edit(store)
            await store.save(target)
        return store.sorted()

    try:
        return asyncio.run(run())
    except PackSyncError as e:
        out.error(f"Failed to {verb} exclusions: {e}")
        return None


@exclusions.command("list")
@click.argument("target", type=click.Path(file_okay=False))
@click.pass_context
def exclusions_list(ctx: Any, target: str) -> None:
    """List excluded paths of TARGET."""
    out: OutputFormatter = ctx.obj["out"]
    paths = _run_exclusion_edit(ctx, target, None, "load")
    if paths is None:
        ctx.exit(1)
    if out.json_output:
        out.output_json(paths)
        return
    if not paths:
        out.info("No excluded paths.")
        return
    for path in paths:
        click.echo(path)


@exclusions.command("add")
@click.argument("target", type=click.Path(file_okay=False))
@click.argument("paths", nargs=-1, required=True)
@click.pass_context
def exclusions_add(ctx: Any, target: str, paths: tuple[str, ...]) -> None:
    """Exclude PATHS (relative to TARGET) from future syncs."""
    out: OutputFormatter = ctx.obj["out"]
    result = _run_exclusion_edit(ctx, target, lambda store: store.add(paths), "update")
    if result is None:
        ctx.exit(1)
    out.success(f"✓ {len(result)} paths excluded")


@exclusions.command("remove")
@click.argument("target", type=click.Path(file_okay=False))
@click.argument("paths", nargs=-1, required=True)
@click.pass_context
def exclusions_remove(ctx: Any, target: str, paths: tuple[str, ...]) -> None:
    """Stop excluding PATHS."""
    out: OutputFormatter = ctx.obj["out"]

    def edit(store: ExclusionStore) -> None:
        for path in paths:
            store.remove(path)

    result = _run_exclusion_edit(ctx, target, edit, "update")
    if result is None:
        ctx.exit(1)
    out.success(f"✓ {len(result)} paths excluded")


@main.command("install-package")
@click.argument("package", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("target", type=click.Path(file_okay=False))
@click.option("--exclude", "-e", multiple=True, help="Exclude a relative path (repeatable)")
@click.pass_context
def install_package(
    ctx: Any, package: Path, target: str, exclude: tuple[str, ...]
) -> None:
    """Install missing files into TARGET from a local PACKAGE archive."""
    out: OutputFormatter = ctx.obj["out"]
    sink = ProgressSink()

    async def run() -> Manifest:
        backend = _make_backend()
        persisted = await backend.load_exclusion_list(target)
        excluded = sorted(set(persisted) | set(exclude))

        def on_event(event: SyncEvent) -> None:
            sink.handle(event)

        subscription = backend.subscribe(on_event)
        try:
            return await backend.install_from_package(package, target, excluded)
        finally:
            subscription.unsubscribe()
            await backend.close()

    try:
        manifest = asyncio.run(run())
    except PackSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(
            {
                "packageName": manifest.package_name,
                "version": manifest.version,
                "installed": [e.message for e in sink.log if not e.is_error],
                "errors": [e.message for e in sink.log if e.is_error],
            }
        )
    for entry in sink.log:
        if entry.is_error:
            out.warning(entry.message)
    if sink.error_count:
        ctx.exit(1)
    out.success(
        f"✓ Installed {sink.success_count} files from "
        f"{manifest.package_name} {manifest.version}"
    )


@main.command("config")
@click.option("--threads", type=click.IntRange(min=1), default=None, help="Concurrent downloads")
@click.option(
    "--use-trash/--no-trash",
    default=None,
    help="Move removed extra files to the trash",
)
@click.option("--timeout", type=click.FloatRange(min=1), default=None, help="Request timeout in seconds")
@click.pass_context
def config_command(
    ctx: Any,
    threads: Optional[int],
    use_trash: Optional[bool],
    timeout: Optional[float],
) -> None:
    """Show or change stored settings."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        if threads is not None:
            config.thread_count = threads
        if use_trash is not None:
            config.set("use_trash", use_trash)
        if timeout is not None:
            config.set("timeout", timeout)
        values = config.as_dict()
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(values)
        return

    recent = values.get("recent_directories") or []
    out.print_summary(
        "Settings",
        [
            ("Config file", str(config.get_config_path())),
            ("Threads", str(values["thread_count"])),
            ("Use trash", "yes" if values["use_trash"] else "no"),
            ("Timeout", f"{values['timeout']}s"),
            ("Hash check", "disabled" if values["disable_hash_check"] else "enabled"),
            ("Size check", "disabled" if values["disable_size_check"] else "enabled"),
            ("Recent directories", "\n".join(recent) or "-"),
        ],
    )


if __name__ == "__main__":
    main()
