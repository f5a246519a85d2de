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

"""
Tests for the Leaf/Fork task runner.
"""

from __future__ import annotations

import threading
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from solo_manager.errors import SoloError
from solo_manager.pipeline import Fork, Leaf, PipelineRunner, run_pipeline


def _record(calls, name):
    return Leaf(name, lambda ctx, handle: calls.append(name))


class TestSequentialPipeline:
    """Ordering, skipping and abort behaviour of top-level tasks."""

    def test_tasks_run_in_declaration_order(self):
        calls = []
        run_pipeline([_record(calls, "a"), _record(calls, "b"), _record(calls, "c")],
                     SimpleNamespace(), error_message="Error")
        assert calls == ["a", "b", "c"]

    def test_failure_aborts_remaining_tasks(self):
        calls = []

        def _boom(ctx, handle):
            raise RuntimeError("namespace solo-e2e does not exist")

        with pytest.raises(SoloError, match="Error in adding node: namespace solo-e2e does not exist") as exc:
            run_pipeline([_record(calls, "a"), Leaf("boom", _boom), _record(calls, "c")],
                         SimpleNamespace(), error_message="Error in adding node")

        assert calls == ["a"]
        assert isinstance(exc.value.__cause__, RuntimeError)

    def test_skip_predicate_receives_context(self):
        calls = []
        ctx = SimpleNamespace(skip_stop=True)
        tasks = [
            Leaf("stop", lambda c, h: calls.append("stop"), skip=lambda c: c.skip_stop),
            Leaf("static skip", lambda c, h: calls.append("static"), skip=True),
            _record(calls, "after"),
        ]
        run_pipeline(tasks, ctx, error_message="Error")
        assert calls == ["after"]

    def test_leaf_may_expand_into_fork(self):
        calls = []
        expand = Leaf("expand", lambda c, h: Fork("children", [_record(calls, "x"), _record(calls, "y")]))
        run_pipeline([expand, _record(calls, "z")], SimpleNamespace(), error_message="Error")
        assert calls == ["x", "y", "z"]

    def test_handle_title_can_be_rewritten(self):
        titles = []

        def _run(ctx, handle):
            handle.title = "Acquire lease - attempt 1/10"
            titles.append(handle.title)

        run_pipeline([Leaf("Acquire lease", _run)], SimpleNamespace(), error_message="Error")
        assert titles == ["Acquire lease - attempt 1/10"]


class TestFinalizer:
    """The finalizer runs exactly once on success and on failure."""

    def test_finalizer_runs_once_on_success(self):
        finalizer = Mock()
        run_pipeline([Leaf("ok", lambda c, h: None)], SimpleNamespace(), error_message="Error",
                     finalizer=finalizer)
        finalizer.assert_called_once_with()

    def test_finalizer_runs_once_on_failure(self):
        finalizer = Mock()

        def _fail(ctx, handle):
            raise SoloError("boom")

        with pytest.raises(SoloError):
            run_pipeline([Leaf("fail", _fail)], SimpleNamespace(), error_message="Error", finalizer=finalizer)
        finalizer.assert_called_once_with()

    def test_finalizer_error_does_not_mask_task_error(self):
        def _fail(ctx, handle):
            raise SoloError("task failed")

        finalizer = Mock(side_effect=SoloError("cleanup failed"))
        with pytest.raises(SoloError, match="task failed"):
            run_pipeline([Leaf("fail", _fail)], SimpleNamespace(), error_message="Error", finalizer=finalizer)


class TestConcurrentFork:
    """Concurrent forks join every child before the pipeline moves on."""

    def test_children_run_concurrently(self):
        barrier = threading.Barrier(3, timeout=5)
        calls = []

        def _child(name):
            def _run(ctx, handle):
                barrier.wait()
                calls.append(name)
            return Leaf(name, _run)

        fork = Fork("parallel", [_child("n1"), _child("n2"), _child("n3")], concurrent=True)
        run_pipeline([fork, _record(calls, "after")], SimpleNamespace(), error_message="Error")

        assert sorted(calls[:3]) == ["n1", "n2", "n3"]
        assert calls[3] == "after"

    def test_all_children_finish_before_failure_propagates(self):
        finished = []

        def _fail(ctx, handle):
            raise SoloError("no pod found for nodeAlias: node2")

        fork = Fork("check pods", [
            Leaf("node1", lambda c, h: finished.append("node1")),
            Leaf("node2", _fail),
            Leaf("node3", lambda c, h: finished.append("node3")),
        ], concurrent=True)

        with pytest.raises(SoloError, match="no pod found for nodeAlias: node2"):
            run_pipeline([fork], SimpleNamespace(), error_message="Error", runner=PipelineRunner(max_workers=2))
        assert sorted(finished) == ["node1", "node3"]
