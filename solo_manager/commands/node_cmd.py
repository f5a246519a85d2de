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
Node lifecycle commands.

Every command maps to one NodeOrchestrator operation. Options are generated
from the operation's flag set so that option names, help text and the
sticky config cache stay in one place (solo_manager.flags).

Usage:
    solo node add --namespace solo-e2e --gossip-keys --tls-keys
    solo node add-prepare --namespace solo-e2e --output-dir ./context
    solo node upgrade --namespace solo-e2e --upgrade-zip-file build.zip
    solo node logs --namespace solo-e2e --node-aliases node1,node2
"""

from __future__ import annotations

import inspect
from typing import Any

import typer

from solo_manager import flags
from solo_manager.commands.common import build_command_context, flag_option
from solo_manager.orchestrator import NodeOrchestrator

app = typer.Typer(help="Manage consensus nodes of a solo network.")


def run_node_operation(operation: str, argv: dict[str, Any]) -> None:
    """Build the collaborators and run one orchestrator operation."""
    orchestrator = NodeOrchestrator(build_command_context())
    getattr(orchestrator, operation)(argv)


def _register(name: str, operation: str, flag_set: flags.FlagSet, help: str) -> None:
    """Add a command whose options are the flags of ``flag_set``."""
    parameters = [
        inspect.Parameter(
            flag.name,
            inspect.Parameter.KEYWORD_ONLY,
            default=flag_option(flag),
            annotation=bool | None if flag.is_bool else str | None,
        )
        for flag in flag_set.required + flag_set.optional
    ]

    def command(**argv: Any) -> None:
        run_node_operation(operation, argv)

    command.__name__ = operation
    command.__doc__ = help
    command.__signature__ = inspect.Signature(parameters)
    app.command(name)(command)


# ============================================================================
# Add, delete, update and upgrade, each with its three standalone phases
# ============================================================================

_PHASED = (
    ("add", "Add a new node to the network.", flags.ADD_FLAGS, flags.ADD_PREPARE_FLAGS,
     flags.ADD_SUBMIT_FLAGS, flags.ADD_EXECUTE_FLAGS),
    ("delete", "Delete a node from the network.", flags.DELETE_FLAGS, flags.DELETE_PREPARE_FLAGS,
     flags.DELETE_SUBMIT_FLAGS, flags.DELETE_EXECUTE_FLAGS),
    ("update", "Update the endpoints, keys or account of a node.", flags.UPDATE_FLAGS,
     flags.UPDATE_PREPARE_FLAGS, flags.UPDATE_SUBMIT_FLAGS, flags.UPDATE_EXECUTE_FLAGS),
    ("upgrade", "Upgrade the software of every node.", flags.UPGRADE_FLAGS, flags.UPGRADE_PREPARE_FLAGS,
     flags.UPGRADE_SUBMIT_FLAGS, flags.UPGRADE_EXECUTE_FLAGS),
)

for _verb, _help, _full, _prepare, _submit, _execute in _PHASED:
    _register(_verb, _verb, _full, _help)
    _register(f"{_verb}-prepare", f"{_verb}_prepare", _prepare,
              f"Prepare the '{_verb}' operation and save its context to --output-dir.")
    _register(f"{_verb}-submit-transactions", f"{_verb}_submit_transactions", _submit,
              f"Submit the ledger transactions of '{_verb}' using the context in --input-dir.")
    _register(f"{_verb}-execute", f"{_verb}_execute", _execute,
              f"Execute the cluster side of '{_verb}' using the context in --input-dir.")

# ============================================================================
# Single phase operations
# ============================================================================

_register("prepare-upgrade", "prepare_upgrade", flags.PREPARE_UPGRADE_FLAGS,
          "Upload the upgrade package and send the prepare-upgrade transaction.")
_register("freeze-upgrade", "freeze_upgrade", flags.FREEZE_UPGRADE_FLAGS,
          "Send the freeze-upgrade transaction for a prepared upgrade package.")
_register("download-generated-files", "download_generated_files", flags.DOWNLOAD_GENERATED_FILES_FLAGS,
          "Download the config and address book files generated by the nodes.")
_register("logs", "logs", flags.LOGS_FLAGS, "Download logs and configs of the nodes.")
_register("states", "states", flags.STATES_FLAGS, "Download saved state files of the nodes.")
_register("refresh", "refresh", flags.REFRESH_FLAGS, "Reset and restart nodes whose pods were recreated.")
_register("keys", "keys", flags.KEYS_FLAGS, "Generate gossip and gRPC TLS keys locally.")
_register("setup", "setup", flags.SETUP_FLAGS, "Install the platform software into the node pods.")
_register("start", "start", flags.START_FLAGS, "Start the node services.")
_register("stop", "stop", flags.STOP_FLAGS, "Stop the node services.")
_register("freeze", "freeze", flags.FREEZE_FLAGS, "Freeze the network and wait for every node to halt.")
_register("restart", "restart", flags.RESTART_FLAGS, "Restart all node services and wait for ACTIVE.")
