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
Shared pytest fixtures for solo_manager tests.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from solo_manager.config import ConfigManager, SoloSettings
from solo_manager.context import CommandContext, WorkflowContext
from solo_manager.flags import STICKY_FLAGS
from solo_manager.services import NetworkNodeServices
from solo_manager.snapshot import ContextSnapshotStore


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary home with every wait set to zero.

    Returns:
        SoloSettings whose cache, logs and flag file live under tmp_path.
    """
    return SoloSettings(
        home=tmp_path / "solo-home",
        lease_retry_delay=0,
        pods_running_delay=0,
        pods_ready_delay=0,
        node_active_delay=0,
        proxy_delay=0,
        node_client_ping_retry_interval=0,
        pod_restart_sleep=0,
        stake_weight_delay=0,
        node_status_settle=0,
        debug_node_wait=0,
    )


@pytest.fixture
def cmd(settings):
    """Command context with mocked cluster collaborators.

    The config manager and snapshot store are real so that flag
    resolution and snapshot files behave as in production.
    """
    return CommandContext(
        settings=settings,
        config_manager=ConfigManager(settings.config_file, STICKY_FLAGS),
        cluster=MagicMock(name="cluster"),
        state_reader=MagicMock(name="state_reader"),
        charts=MagicMock(name="charts"),
        accounts=MagicMock(name="accounts"),
        keys=MagicMock(name="keys"),
        platform=MagicMock(name="platform"),
        network_nodes=MagicMock(name="network_nodes"),
        profiles=MagicMock(name="profiles"),
        certificates=MagicMock(name="certificates"),
        leases=MagicMock(name="leases"),
        snapshots=ContextSnapshotStore(),
    )


@pytest.fixture
def three_node_service_map():
    """Service map of a running three node network (node1..node3)."""
    return {
        f"node{i}": NetworkNodeServices(
            node_alias=f"node{i}",
            namespace="solo-e2e",
            node_id=i - 1,
            account_id=f"0.0.{i + 2}",
            node_pod_name=f"network-node{i}-0",
        )
        for i in (1, 2, 3)
    }


@pytest.fixture
def workflow_context():
    """Empty workflow context."""
    return WorkflowContext()
