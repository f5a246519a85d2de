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
Tests for node task factories and their module level helpers.
"""

from __future__ import annotations

import hashlib
import os
import zipfile
from unittest.mock import MagicMock

import pytest

from solo_manager.config import NodeConfig
from solo_manager.constants import NodeSubcommandType
from solo_manager.context import NewNode, WorkflowContext
from solo_manager.errors import SoloError
from solo_manager.flags import STOP_FLAGS
from solo_manager.ledger import FileAppendTransaction, FileUpdateTransaction, Receipt
from solo_manager.pipeline import run_pipeline
from solo_manager.tasks import (
    NodeTasks,
    build_mock_upgrade_zip,
    build_node_values_args,
    parse_platform_status,
    status_name,
)


@pytest.fixture
def ledger_client():
    """Ledger client mock whose transactions all succeed."""
    client = MagicMock(name="ledger_client")
    client.execute.return_value = Receipt(status="SUCCESS")
    return client


class TestPlatformStatus:

    def test_parses_metric_line(self):
        metrics = (
            "# HELP platform_PlatformStatus Platform status\n"
            "# TYPE platform_PlatformStatus gauge\n"
            "platform_PlatformStatus 2.0\n"
            "platform_other 7\n"
        )
        assert parse_platform_status(metrics) == 2

    def test_missing_metric(self):
        assert parse_platform_status("platform_other 7\n") is None
        assert parse_platform_status("") is None

    def test_status_names(self):
        assert status_name(2) == "ACTIVE"
        assert status_name(6) == "FREEZE_COMPLETE"
        assert status_name(99) == "99"


class TestUploadUpgradeZip:

    def test_chunks_are_update_then_appends(self, cmd, tmp_path, ledger_client):
        payload = os.urandom(8200)
        zip_file = tmp_path / "mock-upgrade.zip"
        zip_file.write_bytes(payload)

        zip_hash = NodeTasks(cmd).upload_upgrade_zip(str(zip_file), ledger_client)

        transactions = [c.args[0] for c in ledger_client.execute.call_args_list]
        assert [type(t) for t in transactions] == [FileUpdateTransaction, FileAppendTransaction]
        assert [len(t.contents) for t in transactions] == [5120, 3080]
        assert b"".join(t.contents for t in transactions) == payload
        assert zip_hash == hashlib.sha384(payload).hexdigest()

    def test_one_byte_past_two_chunks(self, cmd, tmp_path, ledger_client):
        payload = os.urandom(10241)
        zip_file = tmp_path / "mock-upgrade.zip"
        zip_file.write_bytes(payload)

        NodeTasks(cmd).upload_upgrade_zip(str(zip_file), ledger_client)

        transactions = [c.args[0] for c in ledger_client.execute.call_args_list]
        assert [type(t) for t in transactions] == [FileUpdateTransaction, FileAppendTransaction,
                                                   FileAppendTransaction]
        assert len(transactions[-1].contents) == 1

    def test_failed_chunk_is_reported(self, cmd, tmp_path, ledger_client):
        zip_file = tmp_path / "mock-upgrade.zip"
        zip_file.write_bytes(b"x" * 10)
        ledger_client.execute.return_value = Receipt(status="INVALID_SIGNATURE")

        with pytest.raises(SoloError, match="failed to upload build.zip file"):
            NodeTasks(cmd).upload_upgrade_zip(str(zip_file), ledger_client)


class TestMockUpgradeZip:

    def test_version_is_bumped(self, tmp_path):
        templates = tmp_path / "templates"
        templates.mkdir()
        (templates / "application.properties").write_text(
            "hedera.config.version=3\ncontracts.chainId=298\n# comment\n")

        zip_path = build_mock_upgrade_zip(str(tmp_path))

        with zipfile.ZipFile(zip_path) as archive:
            content = archive.read("data/config/application.properties").decode()
        assert "hedera.config.version=4" in content
        assert "contracts.chainId=298" in content
        assert "# comment" not in content

    def test_missing_template(self, tmp_path):
        with pytest.raises(SoloError, match="application.properties template not found"):
            build_mock_upgrade_zip(str(tmp_path))


class TestNodeValuesArgs:

    def test_add_appends_new_node(self, three_node_service_map):
        ctx = WorkflowContext(config=NodeConfig(haproxy_ips="node4=10.0.0.4"))
        ctx.service_map = three_node_service_map
        ctx.new_node = NewNode(account_id="0.0.6", name="node4")

        args, debug_index = build_node_values_args(ctx, NodeSubcommandType.ADD)

        assert "hedera.nodes[3].accountId=0.0.6" in args
        assert "hedera.nodes[3].name=node4" in args
        assert "hedera.nodes[3].nodeId=3" in args
        assert "hedera.nodes[3].haproxyStaticIP=10.0.0.4" in args
        assert debug_index == 0

    def test_delete_keeps_slot_with_ignored_account(self, three_node_service_map):
        ctx = WorkflowContext(config=NodeConfig(node_alias="node2", debug_node_alias="node3"))
        ctx.service_map = three_node_service_map

        args, debug_index = build_node_values_args(ctx, NodeSubcommandType.DELETE)

        assert "hedera.nodes[1].accountId=0.0.0" in args
        assert "hedera.nodes[1].name=node2" in args
        assert debug_index == 2

    def test_update_uses_new_account_number(self, three_node_service_map):
        ctx = WorkflowContext(config=NodeConfig(node_alias="node1", new_account_number="0.0.9"))
        ctx.service_map = three_node_service_map

        args, _ = build_node_values_args(ctx, NodeSubcommandType.UPDATE)

        assert "hedera.nodes[0].accountId=0.0.9" in args
        assert "hedera.nodes[1].accountId=0.0.4" in args


class TestInitialize:

    def test_builder_receives_resolved_flags(self, cmd):
        builder = MagicMock(return_value=NodeConfig(namespace="solo-e2e"))
        tasks = NodeTasks(cmd)
        ctx = WorkflowContext()

        run_pipeline([tasks.initialize({"namespace": "solo-e2e"}, STOP_FLAGS, builder, acquire_lease=False)],
                     ctx, error_message="Error")

        values = builder.call_args.args[2]
        assert values["namespace"] == "solo-e2e"
        assert ctx.config.namespace == "solo-e2e"
        cmd.leases.create.assert_not_called()

    def test_lease_is_held_only_after_acquire(self, cmd):
        lease = MagicMock(name="lease")
        cmd.leases.create.return_value = lease
        cmd.leases.acquire_with_retry.side_effect = SoloError("lease already acquired")
        tasks = NodeTasks(cmd)

        with pytest.raises(SoloError, match="lease already acquired"):
            run_pipeline([tasks.initialize({"namespace": "solo-e2e"}, STOP_FLAGS,
                                           lambda c, x, v: NodeConfig(namespace=v["namespace"]))],
                         WorkflowContext(), error_message="Error", finalizer=tasks.close)

        assert tasks.lease is None
        lease.release.assert_not_called()

    def test_close_releases_acquired_lease(self, cmd):
        lease = MagicMock(name="lease")
        cmd.leases.create.return_value = lease
        tasks = NodeTasks(cmd)

        run_pipeline([tasks.initialize({"namespace": "solo-e2e"}, STOP_FLAGS,
                                       lambda c, x, v: NodeConfig(namespace=v["namespace"]))],
                     WorkflowContext(), error_message="Error", finalizer=tasks.close)

        cmd.leases.create.assert_called_once_with("solo-e2e")
        lease.release.assert_called_once_with()


class TestFinalize:

    def test_key_generation_flags_are_cleared(self, cmd):
        cmd.config_manager.update({"generate_gossip_keys": True, "generate_tls_keys": True})
        run_pipeline([NodeTasks(cmd).finalize()], WorkflowContext(), error_message="Error")
        assert cmd.config_manager.get_flag("generate_gossip_keys") is False
        assert cmd.config_manager.get_flag("generate_tls_keys") is False


