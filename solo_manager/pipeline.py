# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Task pipeline: tagged Leaf/Fork tasks and the recursive runner.

A workflow is a list of tasks run strictly in order. A :class:`Leaf`
does one unit of work and may hand back a :class:`Fork` to expand into
sub-tasks discovered at run time. A concurrent Fork starts every child on
a worker thread and joins them all before the pipeline moves on; the
first child failure (in declaration order) is then re-raised.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Union

from solo_manager import console
from solo_manager.errors import SoloError

logger = logging.getLogger(__name__)


class TaskHandle:
    """Handle passed to a running leaf for progress reporting.

    Attributes:
        title: Current title; a leaf may rewrite it (e.g. attempt counters).
    """

    def __init__(self, title: str, depth: int) -> None:
        self.title = title
        self._depth = depth

    def output(self, message: str) -> None:
        """Print a progress line under the task title."""
        console.print(f"{'  ' * (self._depth + 1)}[dim]{message}[/dim]")


@dataclass
class Leaf:
    """A single unit of work.

    Attributes:
        title: Title streamed to the operator.
        run: Callable receiving (context, handle); may return a Fork.
        skip: Bool or predicate on the context; a skipped leaf is not run.
    """

    title: str
    run: Callable[[Any, TaskHandle], Fork | None]
    skip: Callable[[Any], bool] | bool = False


@dataclass
class Fork:
    """A group of sub-tasks, run in sequence or concurrently."""

    title: str
    children: list[Task] = field(default_factory=list)
    concurrent: bool = False


Task = Union[Leaf, Fork]


class PipelineRunner:
    """Recursive interpreter for Leaf/Fork task trees.

    Args:
        max_workers: Cap on threads per concurrent fork, or None for one per child.
    """

    def __init__(self, max_workers: int | None = None) -> None:
        self._max_workers = max_workers

    def run(self, tasks: Sequence[Task], ctx: Any) -> None:
        """Run top-level tasks in order; the first failure aborts the rest."""
        for task in tasks:
            self._run_task(task, ctx, 0)

    def _run_task(self, task: Task, ctx: Any, depth: int) -> None:
        if isinstance(task, Fork):
            self._run_fork(task, ctx, depth)
            return

        indent = "  " * depth
        skip = task.skip(ctx) if callable(task.skip) else task.skip
        if skip:
            console.print(f"{indent}[dim]↷ {task.title} [SKIPPED][/dim]")
            return

        handle = TaskHandle(task.title, depth)
        logger.debug("Starting task: %s", task.title)
        try:
            result = task.run(ctx, handle)
            if isinstance(result, Fork):
                console.print(f"{indent}[bold]{handle.title}[/bold]")
                self._run_fork(result, ctx, depth + 1)
        except Exception:
            console.print(f"{indent}[red]❌ {handle.title}[/red]")
            raise
        console.print(f"{indent}[green]✅ {handle.title}[/green]")

    def _run_fork(self, fork: Fork, ctx: Any, depth: int) -> None:
        if not fork.children:
            return
        if fork.concurrent and len(fork.children) > 1:
            self._run_concurrent(fork.children, ctx, depth)
            return
        for child in fork.children:
            self._run_task(child, ctx, depth)

    def _run_concurrent(self, children: list[Task], ctx: Any, depth: int) -> None:
        outputs: dict[int, str] = {}
        lock = threading.Lock()

        def _run_child(index: int, child: Task) -> None:
            with console.buffered() as buf:
                try:
                    self._run_task(child, ctx, depth)
                finally:
                    if buf is not None:
                        with lock:
                            outputs[index] = buf.getvalue()

        workers = self._max_workers or len(children)
        with ThreadPoolExecutor(max_workers=min(workers, len(children))) as executor:
            futures = [executor.submit(_run_child, i, child) for i, child in enumerate(children)]
            wait(futures)

        for index in range(len(children)):
            if outputs.get(index):
                console.print(outputs[index], end="", markup=False, highlight=False)

        for future in futures:
            future.result()


def run_pipeline(
    tasks: Sequence[Task],
    ctx: Any,
    *,
    error_message: str,
    finalizer: Callable[[], None] | None = None,
    runner: PipelineRunner | None = None,
) -> None:
    """Run a workflow and always run its finalizer exactly once.

    Args:
        tasks: Ordered top-level tasks.
        ctx: Workflow state shared by every task.
        error_message: Stage message prefixed to any failure.
        finalizer: Cleanup callable (closing clients, port-forwards, lease).
        runner: Runner to use, or None for a default one.

    Raises:
        SoloError: Wrapping the first task failure, cause attached.
    """
    runner = runner or PipelineRunner()
    try:
        runner.run(tasks, ctx)
    except Exception as err:
        raise SoloError(f"{error_message}: {err}") from err
    finally:
        if finalizer is not None:
            try:
                finalizer()
            except Exception as err:
                logger.error("Cleanup after '%s' failed: %s", error_message, err)
