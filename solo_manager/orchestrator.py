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

"""Orchestration: node and account workflows composed from task factories.

Each public method of :class:`NodeOrchestrator` is one CLI operation. The
multi-phase operations (add, delete, update, upgrade) are also exposed
phase by phase; prepare saves a context snapshot that submit and execute
load, so a workflow can be resumed after a failure in a later phase.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from rich.panel import Panel

from solo_manager import console
from solo_manager import flags
from solo_manager import node_configs
from solo_manager.accounts import batch_accounts
from solo_manager.constants import (
    FREEZE_ADMIN_ACCOUNT,
    LABEL_ACCOUNT_ID,
    SHORTER_SYSTEM_ACCOUNTS,
    SYSTEM_ACCOUNTS,
    TREASURY_ACCOUNT_ID,
    NodeSubcommandType,
)
from solo_manager.context import CommandContext, ResultTracker, WorkflowContext
from solo_manager.pipeline import Fork, Leaf, PipelineRunner, Task, TaskHandle, run_pipeline
from solo_manager.snapshot import ADD_SNAPSHOT, DELETE_SNAPSHOT, UPDATE_SNAPSHOT, UPGRADE_SNAPSHOT
from solo_manager.tasks import NodeTasks

logger = logging.getLogger(__name__)

Argv = dict[str, Any]


class _Workflows:
    """Shared run loop: banner, pipeline, finalizer."""

    def __init__(self, cmd: CommandContext, runner: PipelineRunner | None = None) -> None:
        self._cmd = cmd
        self._runner = runner or PipelineRunner(cmd.settings.max_concurrency)
        self.tasks = NodeTasks(cmd)

    def _run(self, title: str, tasks: Sequence[Task], error_message: str) -> WorkflowContext:
        console.print(Panel.fit(title, style="bold blue"))
        ctx = WorkflowContext()
        run_pipeline(tasks, ctx, error_message=error_message, finalizer=self._finalize, runner=self._runner)
        console.print(f"[green]✅ {title} completed[/green]")
        return ctx

    def _finalize(self) -> None:
        try:
            self.tasks.close()
        finally:
            self._cmd.accounts.close()
            self._cmd.config_manager.persist()


class NodeOrchestrator(_Workflows):
    """Node lifecycle operations.

    Args:
        cmd: Collaborators of the current CLI invocation.
        runner: Pipeline runner, or None for one capped at ``max_concurrency``.
    """

    # ========================================================================
    # Add
    # ========================================================================

    def _add_prepare_tasks(self) -> list[Task]:
        t = self.tasks
        return [
            t.check_pvcs_enabled(),
            t.identify_existing_nodes(),
            t.determine_new_node_account_number(),
            t.copy_grpc_tls_certificates(),
            t.generate_gossip_keys(multiple=False),
            t.generate_grpc_tls_keys(multiple=False),
            t.load_signing_key_certificate(),
            t.compute_mtls_certificate_hash(),
            t.prepare_gossip_endpoints(),
            t.prepare_grpc_service_endpoints(),
            t.prepare_upgrade_zip(),
            t.check_existing_nodes_staked_amount(),
        ]

    def _add_submit_tasks(self) -> list[Task]:
        t = self.tasks
        return [
            t.send_node_create_transaction(),
            t.send_prepare_upgrade_transaction(),
            t.send_freeze_upgrade_transaction(),
        ]

    def _add_execute_tasks(self) -> list[Task]:
        t = self.tasks
        return [
            t.check_all_nodes_are_frozen("existing_node_aliases"),
            t.download_node_generated_files(),
            t.prepare_staging_directory("all_node_aliases"),
            t.copy_node_keys_to_secrets(),
            t.get_node_logs_and_configs(),
            t.update_chart_with_config_map("Deploy new network node", NodeSubcommandType.ADD),
            t.kill_nodes(),
            t.sleep("Sleep for a while to let the pods restart", self._cmd.settings.pod_restart_sleep),
            t.check_node_pods_are_running(),
            t.populate_service_map(),
            t.fetch_platform_software("all_node_aliases"),
            t.download_last_state(),
            t.upload_state_to_new_node(),
            t.setup_network_nodes("all_node_aliases"),
            t.start_nodes("all_node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("all_node_aliases"),
            t.check_all_node_proxies_are_active(),
            t.stake_new_node(),
            t.trigger_stake_weight_calculate(NodeSubcommandType.ADD),
            t.finalize(),
        ]

    def add(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.ADD_FLAGS, node_configs.add_config),
            *self._add_prepare_tasks(),
            *self._add_submit_tasks(),
            *self._add_execute_tasks(),
        ]
        return self._run("Adding node", tasks, "Error in adding node")

    def add_prepare(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.ADD_PREPARE_FLAGS, node_configs.add_config),
            *self._add_prepare_tasks(),
            self.tasks.save_context_data(ADD_SNAPSHOT),
        ]
        return self._run("Preparing node add", tasks, "Error in preparing node")

    def add_submit_transactions(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.ADD_SUBMIT_FLAGS, node_configs.add_config),
            self.tasks.load_context_data(ADD_SNAPSHOT),
            *self._add_submit_tasks(),
        ]
        return self._run("Submitting node add transactions", tasks, "Error in submitting transactions to node")

    def add_execute(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.ADD_EXECUTE_FLAGS, node_configs.add_execute_config),
            self.tasks.identify_existing_nodes(),
            self.tasks.load_context_data(ADD_SNAPSHOT),
            *self._add_execute_tasks(),
        ]
        return self._run("Executing node add", tasks, "Error in adding node")

    # ========================================================================
    # Delete
    # ========================================================================

    def _delete_prepare_tasks(self) -> list[Task]:
        t = self.tasks
        return [
            t.identify_existing_nodes(),
            t.load_admin_key(),
            t.prepare_upgrade_zip(),
            t.check_existing_nodes_staked_amount(),
        ]

    def _delete_submit_tasks(self) -> list[Task]:
        t = self.tasks
        return [
            t.send_node_delete_transaction(),
            t.send_prepare_upgrade_transaction(),
            t.send_freeze_upgrade_transaction(),
        ]

    def _delete_execute_tasks(self) -> list[Task]:
        t = self.tasks
        return [
            t.check_all_nodes_are_frozen("existing_node_aliases"),
            t.download_node_generated_files(),
            t.prepare_staging_directory("existing_node_aliases"),
            t.refresh_node_list(),
            t.copy_node_keys_to_secrets(),
            t.get_node_logs_and_configs(),
            t.update_chart_with_config_map("Delete network node", NodeSubcommandType.DELETE),
            t.kill_nodes(),
            t.sleep("Sleep for a while to let the pods restart", self._cmd.settings.pod_restart_sleep),
            t.check_node_pods_are_running(),
            t.populate_service_map(),
            t.fetch_platform_software("all_node_aliases"),
            t.setup_network_nodes("all_node_aliases"),
            t.start_nodes("all_node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("all_node_aliases"),
            t.check_all_node_proxies_are_active(),
            t.trigger_stake_weight_calculate(NodeSubcommandType.DELETE),
            t.finalize(),
        ]

    def delete(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.DELETE_FLAGS, node_configs.delete_config),
            *self._delete_prepare_tasks(),
            *self._delete_submit_tasks(),
            *self._delete_execute_tasks(),
        ]
        return self._run("Deleting node", tasks, "Error in deleting nodes")

    def delete_prepare(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.DELETE_PREPARE_FLAGS, node_configs.delete_config),
            *self._delete_prepare_tasks(),
            self.tasks.save_context_data(DELETE_SNAPSHOT),
        ]
        return self._run("Preparing node delete", tasks, "Error in preparing to delete a node")

    def delete_submit_transactions(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.DELETE_SUBMIT_FLAGS, node_configs.delete_config),
            self.tasks.load_context_data(DELETE_SNAPSHOT),
            *self._delete_submit_tasks(),
        ]
        return self._run("Submitting node delete transactions", tasks, "Error in deleting a node")

    def delete_execute(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.DELETE_EXECUTE_FLAGS, node_configs.delete_execute_config),
            self.tasks.load_context_data(DELETE_SNAPSHOT),
            *self._delete_execute_tasks(),
        ]
        return self._run("Executing node delete", tasks, "Error in deleting a node")

    # ========================================================================
    # Update
    # ========================================================================

    def _update_prepare_tasks(self) -> list[Task]:
        t = self.tasks
        return [
            t.identify_existing_nodes(),
            t.load_admin_key(),
            t.prepare_upgrade_zip(),
            t.check_existing_nodes_staked_amount(),
        ]

    def _update_submit_tasks(self) -> list[Task]:
        t = self.tasks
        return [
            t.send_node_update_transaction(),
            t.send_prepare_upgrade_transaction(),
            t.send_freeze_upgrade_transaction(),
        ]

    def _update_execute_tasks(self) -> list[Task]:
        t = self.tasks
        return [
            t.check_all_nodes_are_frozen("existing_node_aliases"),
            t.download_node_generated_files(),
            t.prepare_staging_directory("all_node_aliases"),
            t.copy_node_keys_to_secrets(),
            t.get_node_logs_and_configs(),
            t.update_chart_with_config_map(
                "Update chart to use new configMap due to account number change",
                NodeSubcommandType.UPDATE,
                skip=lambda ctx: not ctx.config.new_account_number and not ctx.config.debug_node_alias),
            t.kill_nodes_and_update_config_map(),
            t.check_node_pods_are_running(),
            t.fetch_platform_software("all_node_aliases"),
            t.setup_network_nodes("all_node_aliases"),
            t.start_nodes("all_node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("all_node_aliases"),
            t.check_all_node_proxies_are_active(),
            t.trigger_stake_weight_calculate(NodeSubcommandType.UPDATE),
            t.finalize(),
        ]

    def update(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.UPDATE_FLAGS, node_configs.update_config),
            *self._update_prepare_tasks(),
            *self._update_submit_tasks(),
            *self._update_execute_tasks(),
        ]
        return self._run("Updating node", tasks, "Error in updating nodes")

    def update_prepare(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.UPDATE_PREPARE_FLAGS, node_configs.update_config),
            *self._update_prepare_tasks(),
            self.tasks.save_context_data(UPDATE_SNAPSHOT),
        ]
        return self._run("Preparing node update", tasks, "Error in preparing node update")

    def update_submit_transactions(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.UPDATE_SUBMIT_FLAGS, node_configs.update_config),
            self.tasks.load_context_data(UPDATE_SNAPSHOT),
            *self._update_submit_tasks(),
        ]
        return self._run("Submitting node update transactions", tasks,
                         "Error in submitting transactions for node update")

    def update_execute(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.UPDATE_EXECUTE_FLAGS, node_configs.update_execute_config),
            self.tasks.load_context_data(UPDATE_SNAPSHOT),
            *self._update_execute_tasks(),
        ]
        return self._run("Executing node update", tasks, "Error in executing network upgrade")

    # ========================================================================
    # Upgrade
    # ========================================================================

    def _upgrade_prepare_tasks(self) -> list[Task]:
        t = self.tasks
        return [
            t.identify_existing_nodes(),
            t.load_admin_key(),
            t.prepare_upgrade_zip(),
            t.check_existing_nodes_staked_amount(),
        ]

    def _upgrade_submit_tasks(self) -> list[Task]:
        return [
            self.tasks.send_prepare_upgrade_transaction(),
            self.tasks.send_freeze_upgrade_transaction(),
        ]

    def _upgrade_execute_tasks(self) -> list[Task]:
        t = self.tasks
        return [
            t.check_all_nodes_are_frozen("existing_node_aliases"),
            t.download_node_upgrade_files(),
            t.get_node_logs_and_configs(),
            t.start_nodes("all_node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("all_node_aliases"),
            t.check_all_node_proxies_are_active(),
            t.finalize(),
        ]

    def upgrade(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.UPGRADE_FLAGS, node_configs.upgrade_config),
            *self._upgrade_prepare_tasks(),
            *self._upgrade_submit_tasks(),
            *self._upgrade_execute_tasks(),
        ]
        return self._run("Upgrading network", tasks, "Error in upgrade network")

    def upgrade_prepare(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.UPGRADE_PREPARE_FLAGS, node_configs.upgrade_config),
            *self._upgrade_prepare_tasks(),
            self.tasks.save_context_data(UPGRADE_SNAPSHOT),
        ]
        return self._run("Preparing network upgrade", tasks, "Error in preparing node upgrade")

    def upgrade_submit_transactions(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.UPGRADE_SUBMIT_FLAGS, node_configs.upgrade_config),
            self.tasks.load_context_data(UPGRADE_SNAPSHOT),
            *self._upgrade_submit_tasks(),
        ]
        return self._run("Submitting network upgrade transactions", tasks,
                         "Error in submitting transactions for node upgrade")

    def upgrade_execute(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.UPGRADE_EXECUTE_FLAGS, node_configs.upgrade_execute_config),
            self.tasks.load_context_data(UPGRADE_SNAPSHOT),
            *self._upgrade_execute_tasks(),
        ]
        return self._run("Executing network upgrade", tasks, "Error in executing network upgrade")

    # ========================================================================
    # Standalone upgrade phases
    # ========================================================================

    def prepare_upgrade(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.PREPARE_UPGRADE_FLAGS, node_configs.prepare_upgrade_config),
            self.tasks.prepare_upgrade_zip(),
            self.tasks.send_prepare_upgrade_transaction(),
        ]
        return self._run("Preparing upgrade", tasks, "Error in preparing node upgrade")

    def freeze_upgrade(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.FREEZE_UPGRADE_FLAGS, node_configs.prepare_upgrade_config,
                                  acquire_lease=False),
            self.tasks.prepare_upgrade_zip(),
            self.tasks.send_freeze_upgrade_transaction(),
        ]
        return self._run("Freezing for upgrade", tasks, "Error in executing node freeze upgrade")

    def download_generated_files(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.DOWNLOAD_GENERATED_FILES_FLAGS,
                                  node_configs.download_generated_files_config),
            self.tasks.identify_existing_nodes(),
            self.tasks.download_node_generated_files(),
        ]
        return self._run("Downloading generated files", tasks, "Error in downloading generated files")

    # ========================================================================
    # Diagnostics and keys
    # ========================================================================

    def logs(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.LOGS_FLAGS, node_configs.logs_config, acquire_lease=False),
            self.tasks.get_node_logs_and_configs(),
        ]
        return self._run("Downloading node logs", tasks, "Error in downloading log from nodes")

    def states(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.STATES_FLAGS, node_configs.states_config, acquire_lease=False),
            self.tasks.get_node_state_files(),
        ]
        return self._run("Downloading node states", tasks, "Error in downloading states from nodes")

    def keys(self, argv: Argv) -> WorkflowContext:
        tasks = [
            self.tasks.initialize(argv, flags.KEYS_FLAGS, node_configs.keys_config, acquire_lease=False),
            self.tasks.generate_gossip_keys(),
            self.tasks.generate_grpc_tls_keys(),
            self.tasks.finalize(),
        ]
        return self._run("Generating keys", tasks, "Error generating keys")

    # ========================================================================
    # Node processes
    # ========================================================================

    def refresh(self, argv: Argv) -> WorkflowContext:
        t = self.tasks
        tasks = [
            t.initialize(argv, flags.REFRESH_FLAGS, node_configs.refresh_config),
            t.identify_network_pods(),
            t.dump_network_nodes_save_state(),
            t.fetch_platform_software("node_aliases"),
            t.setup_network_nodes("node_aliases"),
            t.start_nodes("node_aliases"),
            t.check_all_nodes_are_active("node_aliases"),
            t.check_node_proxies_are_active(),
        ]
        return self._run("Refreshing nodes", tasks, "Error in refreshing nodes")

    def setup(self, argv: Argv) -> WorkflowContext:
        t = self.tasks
        tasks = [
            t.initialize(argv, flags.SETUP_FLAGS, node_configs.setup_config),
            t.identify_network_pods(),
            t.fetch_platform_software("node_aliases"),
            t.setup_network_nodes("node_aliases"),
        ]
        return self._run("Setting up nodes", tasks, "Error in setting up nodes")

    def start(self, argv: Argv) -> WorkflowContext:
        t = self.tasks
        tasks = [
            t.initialize(argv, flags.START_FLAGS, node_configs.start_config),
            t.identify_existing_nodes(),
            t.upload_state_files(),
            t.start_nodes("node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("node_aliases"),
            t.check_node_proxies_are_active(),
            t.add_node_stakes(),
        ]
        return self._run("Starting nodes", tasks, "Error starting node")

    def stop(self, argv: Argv) -> WorkflowContext:
        t = self.tasks
        tasks = [
            t.initialize(argv, flags.STOP_FLAGS, node_configs.stop_config),
            t.identify_network_pods(1),
            t.stop_nodes("node_aliases"),
        ]
        return self._run("Stopping nodes", tasks, "Error stopping node")

    def freeze(self, argv: Argv) -> WorkflowContext:
        t = self.tasks
        tasks = [
            t.initialize(argv, flags.FREEZE_FLAGS, node_configs.freeze_config),
            t.identify_existing_nodes(),
            t.send_freeze_transaction(),
            t.check_all_nodes_are_frozen("existing_node_aliases"),
            t.stop_nodes("existing_node_aliases"),
        ]
        return self._run("Freezing network", tasks, "Error freezing node")

    def restart(self, argv: Argv) -> WorkflowContext:
        t = self.tasks
        tasks = [
            t.initialize(argv, flags.RESTART_FLAGS, node_configs.restart_config),
            t.identify_existing_nodes(),
            t.start_nodes("existing_node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("existing_node_aliases"),
            t.check_node_proxies_are_active(),
        ]
        return self._run("Restarting network", tasks, "Error restarting node")


class AccountOrchestrator(_Workflows):
    """System account key rotation.

    Args:
        cmd: Collaborators of the current CLI invocation.
        runner: Pipeline runner, or None for one capped at ``max_concurrency``.
    """

    def init(self, argv: Argv) -> ResultTracker:
        """Replace the genesis key of every system account with a fresh key.

        Returns:
            Counts of fulfilled, skipped and rejected accounts.
        """
        state: dict[str, Any] = {}

        def _prepare(ctx: WorkflowContext, handle: TaskHandle) -> None:
            namespace = ctx.config.namespace
            state["update_secrets"] = bool(self._cmd.cluster.list_secrets(namespace, [LABEL_ACCOUNT_ID]))
            ranges = SHORTER_SYSTEM_ACCOUNTS if ctx.config.dev_mode else SYSTEM_ACCOUNTS
            state["batches"] = batch_accounts(ranges, self._cmd.settings.account_update_batch_size)
            # A write transaction makes the ledger create the remaining system accounts
            self._cmd.accounts.transfer_amount(TREASURY_ACCOUNT_ID, FREEZE_ADMIN_ACCOUNT, 1)

        def _update(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            children = []
            for batch in state["batches"]:
                if len(batch) > 1:
                    title = f"Updating accounts [{batch[0]} to {batch[-1]}]"
                else:
                    title = f"Updating account {batch[0]}"
                children.append(Leaf(title, lambda c, h, batch=batch: self._cmd.accounts.update_special_accounts_keys(
                    c.config.namespace, batch, state["update_secrets"], c.result_tracker)))
            return Fork("Update special account key sets", children)

        def _display(ctx: WorkflowContext, handle: TaskHandle) -> None:
            tracker = ctx.result_tracker
            console.print(f"[green]✅ Account keys updated SUCCESSFULLY: {tracker.fulfilled_count}[/green]")
            if tracker.skipped_count > 0:
                console.print(f"[cyan]Account keys updates SKIPPED: {tracker.skipped_count}[/cyan]")
            if tracker.rejected_count > 0:
                console.print(f"[yellow]ℹ️  Account keys updates with ERROR: "
                              f"{tracker.rejected_count}[/yellow]")

        tasks = [
            self.tasks.initialize(argv, flags.ACCOUNT_INIT_FLAGS, node_configs.account_init_config),
            Leaf("Prepare for account key updates", _prepare),
            Leaf("Update special account key sets", _update),
            Leaf("Display results", _display),
        ]
        ctx = self._run("Initializing system accounts", tasks, "Error in creating account")
        return ctx.result_tracker
