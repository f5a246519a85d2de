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
Tests for context snapshots written by prepare phases and read by later phases.
"""

from __future__ import annotations

import json

import pytest

from solo_manager.config import NodeConfig
from solo_manager.context import NewNode, WorkflowContext
from solo_manager.errors import MissingArgumentError, SoloError
from solo_manager.helpers import ServiceEndpoint
from solo_manager.pipeline import run_pipeline
from solo_manager.services import NetworkNodeServices
from solo_manager.snapshot import ADD_SNAPSHOT, DELETE_SNAPSHOT, UPDATE_SNAPSHOT, ContextSnapshotStore
from solo_manager.tasks import NodeTasks


@pytest.fixture
def zero_based_service_map():
    """Three nodes aliased node0..node2 with accounts 0.0.3..0.0.5."""
    return {
        f"node{i}": NetworkNodeServices(node_alias=f"node{i}", namespace="solo-e2e", node_id=i,
                                        account_id=f"0.0.{i + 3}")
        for i in range(3)
    }


class TestAddPrepareSnapshot:

    def test_new_node_and_all_aliases_are_saved(self, cmd, tmp_path, zero_based_service_map):
        tasks = NodeTasks(cmd)
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e", output_dir=str(tmp_path)))
        ctx.service_map = zero_based_service_map
        ctx.existing_node_aliases = list(zero_based_service_map)
        ctx.all_node_aliases = list(zero_based_service_map)

        run_pipeline([tasks.determine_new_node_account_number(), tasks.save_context_data(ADD_SNAPSHOT)],
                     ctx, error_message="Error in preparing node")

        data = json.loads((tmp_path / "node-add.json").read_text())
        assert data["new_node"] == {"account_id": "0.0.6", "name": "node3"}
        assert data["node_alias"] == "node3"
        assert data["all_node_aliases"] == ["node0", "node1", "node2", "node3"]
        assert data["existing_node_aliases"] == ["node0", "node1", "node2"]

    def test_removed_node_account_is_ignored(self, cmd, tmp_path, zero_based_service_map):
        zero_based_service_map["node2"].account_id = "0.0.0"
        tasks = NodeTasks(cmd)
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e"))
        ctx.service_map = zero_based_service_map

        run_pipeline([tasks.determine_new_node_account_number()], ctx, error_message="Error")

        assert ctx.new_node.account_id == "0.0.5"

    def test_new_alias_follows_highest_number_in_name_order(self, cmd):
        # kubectl returns node1, node10, node2, ..., node9
        aliases = sorted(f"node{i}" for i in range(1, 11))
        tasks = NodeTasks(cmd)
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e"))
        ctx.service_map = {
            alias: NetworkNodeServices(node_alias=alias, namespace="solo-e2e",
                                       account_id=f"0.0.{int(alias[4:]) + 2}")
            for alias in aliases
        }

        run_pipeline([tasks.determine_new_node_account_number()], ctx, error_message="Error")

        assert ctx.node_alias == "node11"
        assert ctx.node_alias not in ctx.service_map
        assert ctx.new_node.account_id == "0.0.13"

    def test_missing_output_dir_fails(self, cmd):
        tasks = NodeTasks(cmd)
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e"))

        with pytest.raises(SoloError, match="--output-dir"):
            run_pipeline([tasks.save_context_data(ADD_SNAPSHOT)], ctx, error_message="Error")

    def test_add_context_round_trip(self, tmp_path):
        store = ContextSnapshotStore()
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e"))
        ctx.new_node = NewNode(account_id="0.0.6", name="node4")
        ctx.node_alias = "node4"
        ctx.existing_node_aliases = ["node1", "node2", "node3"]
        ctx.all_node_aliases = ["node1", "node2", "node3", "node4"]
        ctx.signing_cert_der = b"\x30\x82\x01\x0a"
        ctx.tls_cert_hash = bytes(range(48))
        ctx.gossip_endpoints = [ServiceEndpoint(port=50111, domain_name="network-node4-svc.solo-e2e.svc")]
        ctx.admin_key = "302e"
        store.save(str(tmp_path), ADD_SNAPSHOT.filename, ADD_SNAPSHOT.save(ctx))

        restored = WorkflowContext(config=NodeConfig(namespace="solo-e2e"))
        ADD_SNAPSHOT.load(restored, store.load(str(tmp_path), ADD_SNAPSHOT.filename))

        assert restored.new_node == ctx.new_node
        assert restored.config.node_alias == "node4"
        assert restored.signing_cert_der == ctx.signing_cert_der
        assert restored.tls_cert_hash == ctx.tls_cert_hash
        assert restored.gossip_endpoints == ctx.gossip_endpoints
        assert restored.all_node_aliases == ctx.all_node_aliases


class TestOtherSnapshots:

    def test_delete_load_resets_pod_refs(self):
        ctx = WorkflowContext(config=NodeConfig(namespace="solo-e2e"), pod_refs={"node1": "stale"})
        DELETE_SNAPSHOT.load(ctx, {"node_alias": "node2", "existing_node_aliases": ["node1", "node2"]})
        assert ctx.pod_refs == {}
        assert ctx.all_node_aliases == ["node1", "node2"]
        assert ctx.config.node_alias == "node2"

    def test_update_restores_flag_values(self):
        source = WorkflowContext(config=NodeConfig(namespace="solo-e2e", node_alias="node2",
                                                   new_account_number="0.0.7", tls_public_key="/keys/tls.crt"))
        source.node_alias = "node2"
        data = UPDATE_SNAPSHOT.save(source)

        target = WorkflowContext(config=NodeConfig(namespace="solo-e2e"))
        UPDATE_SNAPSHOT.load(target, data)

        assert target.config.new_account_number == "0.0.7"
        assert target.config.tls_public_key == "/keys/tls.crt"
        assert target.config.node_alias == "node2"


class TestContextSnapshotStore:

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(SoloError, match="run the prepare phase first"):
            ContextSnapshotStore().load(str(tmp_path), "node-add.json")

    def test_load_corrupted_file(self, tmp_path):
        (tmp_path / "node-add.json").write_text("{not json")
        with pytest.raises(SoloError, match="corrupted"):
            ContextSnapshotStore().load(str(tmp_path), "node-add.json")

    def test_load_without_directory(self):
        with pytest.raises(MissingArgumentError, match="--input-dir"):
            ContextSnapshotStore().load(None, "node-add.json")

    def test_save_leaves_no_temp_files(self, tmp_path):
        ContextSnapshotStore().save(str(tmp_path / "ctx"), "node-delete.json", {"node_alias": "node2"})
        assert [p.name for p in (tmp_path / "ctx").iterdir()] == ["node-delete.json"]
