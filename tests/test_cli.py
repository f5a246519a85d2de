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
Tests for the typer command surface.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from solo_manager.cli import app
from solo_manager.context import ResultTracker


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def node_orchestrator():
    """Patched NodeOrchestrator so commands never touch a cluster."""
    with patch("solo_manager.commands.node_cmd.build_command_context"), \
            patch("solo_manager.commands.node_cmd.NodeOrchestrator") as orchestrator:
        yield orchestrator.return_value


class TestNodeCommands:

    def test_options_become_flag_names(self, runner, node_orchestrator):
        result = runner.invoke(app, ["node", "stop", "--namespace", "solo-e2e", "--node-aliases", "node1"])

        assert result.exit_code == 0, result.output
        argv = node_orchestrator.stop.call_args.args[0]
        assert argv == {"namespace": "solo-e2e", "quiet": None, "node_aliases_unparsed": "node1"}

    def test_bool_flags_accept_negation(self, runner, node_orchestrator):
        result = runner.invoke(app, ["node", "keys", "--gossip-keys", "--no-tls-keys"])

        assert result.exit_code == 0, result.output
        argv = node_orchestrator.keys.call_args.args[0]
        assert argv["generate_gossip_keys"] is True
        assert argv["generate_tls_keys"] is False

    def test_phased_commands_are_registered(self, runner, node_orchestrator):
        result = runner.invoke(app, ["node", "upgrade-submit-transactions", "--namespace", "solo-e2e"])

        assert result.exit_code == 0, result.output
        assert node_orchestrator.upgrade_submit_transactions.call_args.args[0]["namespace"] == "solo-e2e"

    def test_unknown_option_is_rejected(self, runner, node_orchestrator):
        result = runner.invoke(app, ["node", "stop", "--bogus"])

        assert result.exit_code != 0
        node_orchestrator.stop.assert_not_called()


class TestAccountCommands:

    def test_rejections_exit_non_zero(self, runner):
        tracker = ResultTracker()
        tracker.rejected_count = 1
        with patch("solo_manager.commands.account_cmd.build_command_context"), \
                patch("solo_manager.commands.account_cmd.AccountOrchestrator") as orchestrator:
            orchestrator.return_value.init.return_value = tracker
            result = runner.invoke(app, ["account", "init", "--namespace", "solo-e2e", "--dev"])

        assert result.exit_code == 1
        argv = orchestrator.return_value.init.call_args.args[0]
        assert argv["namespace"] == "solo-e2e"
        assert argv["dev_mode"] is True
