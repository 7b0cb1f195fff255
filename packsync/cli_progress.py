"""CLI progress display for sync operations.

This module provides Rich-based renderables for the CLI: a live progress
display fed from a ProgressSink and a tree view of a diff.
"""

from typing import Iterable, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)
from rich.text import Text
from rich.tree import Tree

from .sync.diff import FileStatus
from .sync.progress import ProgressSink
from .sync.tree import TreeNode

STATUS_STYLES: dict[FileStatus, str] = {
    FileStatus.UNCHANGED: "dim",
    FileStatus.NEW: "green",
    FileStatus.MODIFIED: "yellow",
    FileStatus.FORCE_UPDATE: "cyan",
    FileStatus.EXTRA: "red",
    FileStatus.EXCLUDED: "magenta",
}


def _add_nodes(branch: Tree, nodes: Iterable[TreeNode], hide_unchanged: bool) -> None:
    for node in nodes:
        if node.children:
            child = branch.add(Text(f"{node.name}/", style="bold blue"))
            _add_nodes(child, node.children, hide_unchanged)
            if node.status is None and not child.children:
                branch.children.remove(child)
            continue
        if node.status is None:
            continue
        if hide_unchanged and node.status == FileStatus.UNCHANGED:
            continue
        label = Text(node.name)
        label.append(f"  [{node.status.value}]", style=STATUS_STYLES[node.status])
        branch.add(label)


def render_tree(
    nodes: Iterable[TreeNode], title: str = "Sync plan", hide_unchanged: bool = False
) -> Tree:
    """Render a diff tree with one colored status label per file.

    Args:
        nodes: Root nodes from build_tree
        title: Label of the tree root
        hide_unchanged: Leave out unchanged files and directories holding
            only unchanged files

    Returns:
        A rich Tree ready to print
    """
    tree = Tree(Text(title, style="bold"))
    _add_nodes(tree, nodes, hide_unchanged)
    return tree


class SyncProgressDisplay:
    """Rich-based progress display for download passes.

    Shows one overall bar (percentage of finished files) and one bar per
    file currently transferring. Finished and failed files are printed
    above the bars as they arrive.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        """Initialize the progress display."""
        self._console = console
        self._progress: Optional[Progress] = None
        self._overall_task: Optional[TaskID] = None
        self._file_tasks: dict[str, TaskID] = {}
        self._finished: set[str] = set()
        self._printed_log = 0

    def update(self, sink: ProgressSink) -> None:
        """Refresh the display from the sink state.

        Args:
            sink: Progress sink of the running pass
        """
        if self._progress is None:
            return

        if self._overall_task is not None:
            self._progress.update(self._overall_task, completed=sink.overall_progress)

        for name, file_progress in sink.per_file.items():
            if name in self._finished:
                continue
            task = self._file_tasks.get(name)
            if task is None:
                task = self._progress.add_task(
                    name, total=file_progress.total or None
                )
                self._file_tasks[name] = task
            self._progress.update(
                task,
                completed=file_progress.downloaded,
                total=file_progress.total or None,
            )

        for entry in sink.log[self._printed_log :]:
            if entry.is_error:
                self._progress.console.print(f"[red]✗[/red] {entry.message}")
            else:
                self._progress.console.print(f"[green]✓[/green] {entry.message}")
                self._finished.add(entry.message)
                task = self._file_tasks.pop(entry.message, None)
                if task is not None:
                    self._progress.remove_task(task)
        self._printed_log = len(sink.log)

    def __enter__(self) -> "SyncProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            console=self._console,
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._overall_task = self._progress.add_task("Overall", total=100)
        self._file_tasks = {}
        self._finished = set()
        self._printed_log = 0
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            for task in self._file_tasks.values():
                self._progress.remove_task(task)
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._overall_task = None
            self._file_tasks = {}
