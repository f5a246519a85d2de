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
Workflow level tests for node and account orchestration.

Cluster, ledger and helm collaborators are mocks; flag resolution,
the pipeline and the finalizer are real.
"""

from __future__ import annotations

import dataclasses
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import call

import pytest
import yaml

from solo_manager.config import NodeConfig
from solo_manager.constants import FREEZE_ADMIN_ACCOUNT, HEDERA_HAPI_PATH, ROOT_CONTAINER, TREASURY_ACCOUNT_ID
from solo_manager.context import NewNode, WorkflowContext
from solo_manager.errors import SoloError
from solo_manager.ledger import (
    AccountUpdateTransaction,
    FreezeTransaction,
    FreezeType,
    NodeCreateTransaction,
    Receipt,
    generate_ed25519_private_key,
)
from solo_manager.orchestrator import AccountOrchestrator, NodeOrchestrator
from solo_manager.pipeline import run_pipeline
from solo_manager.tasks import UPGRADE_CURRENT_DIR

RESTART = ["systemctl", "restart", "network-node"]


@pytest.fixture
def running_network(cmd, three_node_service_map):
    """Cluster mocks for a three node network whose nodes all report ACTIVE."""
    cmd.cluster.has_namespace.return_value = True
    cmd.cluster.exec_container.return_value = "platform_PlatformStatus 2.0"
    cmd.state_reader.get_node_service_map.return_value = three_node_service_map
    return cmd


class TestInitializeFailure:

    def test_missing_namespace_aborts_add(self, cmd):
        cmd.cluster.has_namespace.return_value = False

        with pytest.raises(SoloError) as exc:
            NodeOrchestrator(cmd).add({"namespace": "solo-e2e"})

        assert str(exc.value) == "Error in adding node: namespace solo-e2e does not exist"
        cmd.cluster.has_namespace.assert_called_once_with("solo-e2e")
        cmd.state_reader.get_node_service_map.assert_not_called()
        cmd.leases.create.assert_not_called()
        cmd.accounts.load_node_client.assert_not_called()

    def test_finalizer_runs_after_failure(self, cmd, settings):
        cmd.cluster.has_namespace.return_value = False

        with pytest.raises(SoloError):
            NodeOrchestrator(cmd).delete({"namespace": "solo-e2e", "node_alias": "node2"})

        cmd.accounts.close.assert_called_once_with()
        assert settings.config_file.exists()


class TestStop:

    def test_stops_every_requested_node(self, cmd, settings):
        cmd.cluster.has_namespace.return_value = True

        NodeOrchestrator(cmd).stop({"namespace": "solo-e2e", "node_aliases_unparsed": "node1,node2"})

        cmd.cluster.exec_container.assert_has_calls([
            call("solo-e2e", "network-node1-0", ROOT_CONTAINER, "systemctl stop network-node"),
            call("solo-e2e", "network-node2-0", ROOT_CONTAINER, "systemctl stop network-node"),
        ], any_order=True)
        cmd.leases.create.assert_called_once_with("solo-e2e")
        cmd.leases.create.return_value.release.assert_called_once_with()

        persisted = yaml.safe_load(settings.config_file.read_text())["flags"]
        assert persisted["namespace"] == "solo-e2e"
        assert persisted["node_aliases_unparsed"] == "node1,node2"

    def test_missing_pod_skips_stop(self, cmd):
        cmd.cluster.has_namespace.return_value = True

        def _wait(namespace, labels, *args):
            if "solo.hedera.com/node-name=node2" in labels:
                raise SoloError("pods not running")

        cmd.state_reader.wait_for_running_pods.side_effect = _wait

        ctx = NodeOrchestrator(cmd).stop({"namespace": "solo-e2e", "node_aliases_unparsed": "node1,node2"})

        assert ctx.skip_stop is True
        cmd.cluster.exec_container.assert_not_called()


class TestStart:

    ARGV = {"namespace": "solo-e2e", "node_aliases_unparsed": "node1,node2", "release_tag": "v0.58.10"}

    def test_starts_checks_and_stakes_requested_nodes(self, running_network, three_node_service_map):
        cmd = running_network
        cmd.accounts.get_node_account_map.return_value = {"node1": "0.0.3", "node2": "0.0.4"}
        client = cmd.accounts.load_node_client.return_value
        client.execute.return_value = Receipt(status="SUCCESS")

        NodeOrchestrator(cmd).start(dict(self.ARGV))

        cmd.cluster.exec_container.assert_has_calls([
            call("solo-e2e", "network-node1-0", ROOT_CONTAINER, RESTART),
            call("solo-e2e", "network-node2-0", ROOT_CONTAINER, RESTART),
        ], any_order=True)
        assert call("solo-e2e", "network-node3-0", ROOT_CONTAINER, RESTART) \
            not in cmd.cluster.exec_container.call_args_list
        assert cmd.state_reader.wait_for_pod_ready.call_count == 2

        cmd.accounts.get_node_account_map.assert_called_once_with(["node1", "node2"], three_node_service_map)
        stakes = [c.args[0] for c in client.execute.call_args_list]
        assert all(isinstance(t, AccountUpdateTransaction) for t in stakes)
        assert sorted((t.account_id, t.staked_node_id) for t in stakes) == [("0.0.3", 0), ("0.0.4", 1)]

    def test_missing_pod_fails_with_its_alias(self, running_network):
        cmd = running_network

        def _wait(namespace, labels, *args):
            if "solo.hedera.com/node-name=node2" in labels:
                raise SoloError("pods not running")

        cmd.state_reader.wait_for_running_pods.side_effect = _wait

        with pytest.raises(SoloError, match="no pod found for nodeAlias: node2"):
            NodeOrchestrator(cmd).start(dict(self.ARGV))

        assert call("solo-e2e", "network-node2-0", ROOT_CONTAINER, RESTART) \
            not in cmd.cluster.exec_container.call_args_list
        cmd.accounts.get_node_account_map.assert_not_called()


class TestSetupAndRefresh:

    def test_setup_fetches_and_configures_requested_nodes(self, running_network):
        cmd = running_network

        NodeOrchestrator(cmd).setup({"namespace": "solo-e2e", "node_aliases_unparsed": "node1,node2",
                                     "release_tag": "v0.58.10"})

        cmd.platform.task_fetch_platform.assert_called_once_with(
            "solo-e2e", ["node1", "node2"], {"node1": "network-node1-0", "node2": "network-node2-0"}, "v0.58.10")
        cmd.platform.task_setup.assert_has_calls([
            call("solo-e2e", "network-node1-0"),
            call("solo-e2e", "network-node2-0"),
        ], any_order=True)
        cmd.cluster.exec_container.assert_not_called()

    def test_setup_without_pod_does_not_fetch(self, running_network):
        cmd = running_network
        cmd.state_reader.wait_for_running_pods.side_effect = SoloError("pods not running")

        with pytest.raises(SoloError, match="Error in setting up nodes: no pod found for nodeAlias: node1"):
            NodeOrchestrator(cmd).setup({"namespace": "solo-e2e", "node_aliases_unparsed": "node1",
                                         "release_tag": "v0.58.10"})

        cmd.platform.task_fetch_platform.assert_not_called()

    def test_refresh_clears_saved_state_before_restart(self, running_network):
        cmd = running_network

        NodeOrchestrator(cmd).refresh({"namespace": "solo-e2e", "node_aliases_unparsed": "node1",
                                       "release_tag": "v0.58.10"})

        commands = [c.args[3] for c in cmd.cluster.exec_container.call_args_list]
        assert commands.index(f"rm -rf {HEDERA_HAPI_PATH}/data/saved/*") < commands.index(RESTART)
        assert {c.args[1] for c in cmd.cluster.exec_container.call_args_list} == {"network-node1-0"}
        cmd.platform.task_fetch_platform.assert_called_once_with(
            "solo-e2e", ["node1"], {"node1": "network-node1-0"}, "v0.58.10")
        cmd.platform.task_setup.assert_called_once_with("solo-e2e", "network-node1-0")
        assert cmd.state_reader.wait_for_pod_ready.call_count == 1

    def test_identify_replaces_stale_pod_refs(self, running_network):
        tasks = NodeOrchestrator(running_network).tasks
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e", node_aliases=("node1",)),
                              pod_refs={"node9": "network-node9-0"})

        run_pipeline([tasks.identify_network_pods()], ctx, error_message="Error in setting up nodes")

        assert ctx.pod_refs == {"node1": "network-node1-0"}


class TestSubmitTransactions:

    def test_node_create_then_prepare_then_freeze_upgrade(self, cmd, settings):
        client = cmd.accounts.require_client.return_value
        client.execute.return_value = Receipt(status="SUCCESS")
        ctx = WorkflowContext(
            config=NodeConfig(namespace="solo-e2e"),
            new_node=NewNode(account_id="0.0.6", name="node4"),
            admin_key=generate_ed25519_private_key(),
            signing_cert_der=b"signing-der",
            tls_cert_hash=b"tls-hash",
            freeze_admin_private_key="freeze-admin-key",
            upgrade_zip_hash="a" * 96,
        )

        before = datetime.now(timezone.utc)
        run_pipeline(NodeOrchestrator(cmd)._add_submit_tasks(), ctx,
                     error_message="Error in submitting transactions to node")
        after = datetime.now(timezone.utc)

        transactions = [c.args[0] for c in client.execute.call_args_list]
        assert [type(t) for t in transactions] == [NodeCreateTransaction, FreezeTransaction, FreezeTransaction]
        assert transactions[0].account_id == "0.0.6"
        assert client.execute.call_args_list[0].args[1] == (ctx.admin_key,)
        assert [t.freeze_type for t in transactions[1:]] == [FreezeType.PREPARE_UPGRADE, FreezeType.FREEZE_UPGRADE]
        assert transactions[2].file_hash == "a" * 96

        delay = timedelta(seconds=settings.freeze_start_delay)
        assert before + delay <= transactions[2].start_time <= after + delay
        cmd.accounts.transfer_amount.assert_called_once_with(TREASURY_ACCOUNT_ID, FREEZE_ADMIN_ACCOUNT, 100000)

    def test_failed_node_create_stops_the_freeze(self, cmd):
        client = cmd.accounts.require_client.return_value
        client.execute.return_value = Receipt(status="INVALID_SIGNATURE")
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e"),
                              new_node=NewNode(account_id="0.0.6", name="node4"),
                              admin_key=generate_ed25519_private_key())

        with pytest.raises(SoloError, match="Error adding node to network"):
            run_pipeline(NodeOrchestrator(cmd)._add_submit_tasks(), ctx,
                         error_message="Error in submitting transactions to node")

        assert client.execute.call_count == 1
        cmd.accounts.transfer_amount.assert_not_called()


class TestServiceMapAfterRestart:

    def test_service_map_is_reread_after_pods_are_killed(self, cmd, three_node_service_map):
        events = []
        cmd.cluster.delete_pod.side_effect = lambda namespace, pod: events.append(("delete", pod))

        def _service_map(namespace):
            events.append(("read", namespace))
            return three_node_service_map

        cmd.state_reader.get_node_service_map.side_effect = _service_map
        tasks = NodeOrchestrator(cmd).tasks
        # as left by a loaded delete snapshot: no pod refs
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e", release_tag="v0.58.10"),
                              service_map=dict(three_node_service_map), all_node_aliases=["node1", "node3"])

        run_pipeline([
            tasks.kill_nodes(),
            tasks.populate_service_map(),
            tasks.fetch_platform_software("all_node_aliases"),
            tasks.setup_network_nodes("all_node_aliases"),
        ], ctx, error_message="Error in deleting node")

        assert events == [("delete", "network-node1-0"), ("delete", "network-node2-0"),
                          ("delete", "network-node3-0"), ("read", "solo-e2e")]
        cmd.platform.task_fetch_platform.assert_called_once_with(
            "solo-e2e", ["node1", "node3"], {"node1": "network-node1-0", "node3": "network-node3-0"}, "v0.58.10")
        cmd.platform.task_setup.assert_has_calls([
            call("solo-e2e", "network-node1-0"),
            call("solo-e2e", "network-node3-0"),
        ], any_order=True)

    def test_update_kills_every_pod_and_takes_refs_from_new_map(self, cmd, three_node_service_map):
        restarted = {alias: dataclasses.replace(service, node_pod_name=f"{service.node_pod_name}-restarted")
                     for alias, service in three_node_service_map.items()}
        cmd.state_reader.get_node_service_map.side_effect = [three_node_service_map, restarted]
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e"))

        run_pipeline([NodeOrchestrator(cmd).tasks.kill_nodes_and_update_config_map()], ctx,
                     error_message="Error in executing network upgrade")

        assert cmd.state_reader.get_node_service_map.call_count == 2
        assert [c.args for c in cmd.cluster.delete_pod.call_args_list] == [
            ("solo-e2e", f"network-node{i}-0") for i in (1, 2, 3)]
        assert ctx.service_map is restarted
        assert ctx.pod_refs == {f"node{i}": f"network-node{i}-0-restarted" for i in (1, 2, 3)}


class TestUpdateChart:

    @staticmethod
    def _chart_task(cmd):
        tasks = NodeOrchestrator(cmd)._update_execute_tasks()
        return next(t for t in tasks if t.title.startswith("Update chart"))

    def test_skipped_without_account_or_debug_change(self, cmd, three_node_service_map):
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e", node_alias="node1"),
                              service_map=three_node_service_map)

        run_pipeline([self._chart_task(cmd)], ctx, error_message="Error in executing network upgrade")

        cmd.charts.upgrade.assert_not_called()
        cmd.profiles.prepare_values_for_node_transaction.assert_not_called()

    def test_new_account_number_upgrades_chart(self, cmd, three_node_service_map, tmp_path):
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e", node_alias="node1",
                                                new_account_number="0.0.9", staging_dir=str(tmp_path)),
                              service_map=three_node_service_map)

        run_pipeline([self._chart_task(cmd)], ctx, error_message="Error in executing network upgrade")

        values_args = cmd.charts.upgrade.call_args.args[4]
        assert "hedera.nodes[0].accountId=0.0.9" in values_args


class TestDiagnostics:

    def test_logs_do_not_take_the_lease(self, cmd):
        cmd.network_nodes.get_logs.return_value = ["/logs/network-node1-0.zip", None]

        NodeOrchestrator(cmd).logs({"namespace": "solo-e2e", "node_aliases_unparsed": "node1"})

        cmd.network_nodes.get_logs.assert_called_once_with("solo-e2e")
        cmd.leases.create.assert_not_called()

    def test_states_per_alias(self, cmd):
        NodeOrchestrator(cmd).states({"namespace": "solo-e2e", "node_aliases_unparsed": "node1,node2"})

        assert cmd.network_nodes.get_states_from_pod.call_args_list == [
            call("solo-e2e", "node1"), call("solo-e2e", "node2")]
        cmd.leases.create.assert_not_called()

    def test_download_generated_files(self, running_network):
        cmd = running_network
        cmd.cluster.has_dir.return_value = True
        cmd.cluster.has_file.return_value = True
        cmd.cluster.list_dir.return_value = [("s-private-node1.pem", False), ("s-public-node1.pem", False),
                                             ("a-private-node1.pem", False), ("backup", True)]

        ctx = NodeOrchestrator(cmd).download_generated_files({"namespace": "solo-e2e", "release_tag": "v0.58.10"})

        cfg = ctx.config
        keys_src = f"{UPGRADE_CURRENT_DIR}/data/keys"
        copied = [(c.args[3], c.args[4]) for c in cmd.cluster.copy_from.call_args_list]
        assert copied == [
            (f"{UPGRADE_CURRENT_DIR}/config.txt", cfg.staging_dir),
            (f"{keys_src}/s-private-node1.pem", cfg.keys_dir),
            (f"{keys_src}/s-public-node1.pem", cfg.keys_dir),
            (f"{UPGRADE_CURRENT_DIR}/application.properties", os.path.join(cfg.staging_dir, "templates")),
        ]
        assert {c.args[1] for c in cmd.cluster.copy_from.call_args_list} == {"network-node1-0"}


class TestKeys:

    def test_keys_without_generation_flags_runs_locally(self, cmd, settings):
        NodeOrchestrator(cmd).keys({"node_aliases_unparsed": "node1"})

        cmd.cluster.has_namespace.assert_not_called()
        cmd.keys.task_generate_gossip_keys.assert_not_called()
        cmd.leases.create.assert_not_called()
        assert (settings.cache_dir / "keys").is_dir()

    def test_keys_generates_for_every_alias(self, cmd, settings):
        NodeOrchestrator(cmd).keys({"node_aliases_unparsed": "node1,node2", "generate_gossip_keys": True,
                                    "generate_tls_keys": True})

        aliases = cmd.keys.task_generate_gossip_keys.call_args.args[0]
        assert aliases == ["node1", "node2"]
        assert cmd.keys.task_generate_tls_keys.call_args.args[0] == ["node1", "node2"]
        assert cmd.config_manager.get_flag("generate_gossip_keys") is False


class TestAccountInit:

    def test_batches_in_dev_mode(self, cmd):
        cmd.cluster.has_namespace.return_value = True
        cmd.cluster.list_secrets.return_value = []

        AccountOrchestrator(cmd).init({"namespace": "solo-e2e", "dev_mode": True})

        cmd.accounts.load_node_client.assert_called_once_with("solo-e2e")
        cmd.accounts.transfer_amount.assert_called_once_with(TREASURY_ACCOUNT_ID, FREEZE_ADMIN_ACCOUNT, 1)
        batches = [c.args[1] for c in cmd.accounts.update_special_accounts_keys.call_args_list]
        assert batches[0] == list(range(3, 13))
        assert batches[-1] == [2]
        assert sum(len(b) for b in batches) == 59
        assert all(c.args[2] is False for c in cmd.accounts.update_special_accounts_keys.call_args_list)
