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

"""Workflow state, result tracking, and the injected command context."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from solo_manager.config import NodeConfig

if TYPE_CHECKING:
    from solo_manager.accounts import AccountManager
    from solo_manager.certificates import CertificateManager
    from solo_manager.charts import ChartManager
    from solo_manager.config import ConfigManager, SoloSettings
    from solo_manager.flags import Prompter
    from solo_manager.helpers import ServiceEndpoint
    from solo_manager.keys import KeyManager
    from solo_manager.kube import ClusterOps
    from solo_manager.lease import LeaseManager
    from solo_manager.network_nodes import NetworkNodes
    from solo_manager.platform import PlatformInstaller
    from solo_manager.profiles import ProfileManager
    from solo_manager.services import ClusterStateReader, NetworkNodeServices
    from solo_manager.snapshot import ContextSnapshotStore


# ============================================================================
# Result tracking
# ============================================================================

class ResultStatus(str, Enum):
    FULFILLED = "fulfilled"
    REJECTED = "rejected"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class AccountUpdateResult:
    """Outcome of one per-account key rotation."""

    status: ResultStatus
    value: str
    reason: str | None = None


@dataclass
class ResultTracker:
    """Counters accumulated across batches of per-account operations."""

    fulfilled_count: int = 0
    skipped_count: int = 0
    rejected_count: int = 0
    rejections: list[AccountUpdateResult] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, result: AccountUpdateResult) -> None:
        with self._lock:
            if result.status == ResultStatus.FULFILLED:
                self.fulfilled_count += 1
            elif result.status == ResultStatus.SKIPPED:
                self.skipped_count += 1
            else:
                self.rejected_count += 1
                self.rejections.append(result)

    @property
    def total(self) -> int:
        return self.fulfilled_count + self.skipped_count + self.rejected_count


# ============================================================================
# Workflow state
# ============================================================================

@dataclass
class NewNode:
    account_id: str
    name: str


@dataclass
class WorkflowContext:
    """Mutable state shared by the tasks of one workflow run.

    ``config`` is set once by the Initialize task and replaced only when a
    context snapshot restores flag values saved by an earlier phase.
    """

    config: NodeConfig | None = None
    cur_date: datetime = field(default_factory=datetime.now)
    service_map: dict[str, NetworkNodeServices] = field(default_factory=dict)
    existing_node_aliases: list[str] = field(default_factory=list)
    all_node_aliases: list[str] = field(default_factory=list)
    pod_refs: dict[str, str] = field(default_factory=dict)
    node_alias: str | None = None
    new_node: NewNode | None = None
    max_num: int | None = None
    upgrade_zip_file: str | None = None
    upgrade_zip_hash: str | None = None
    freeze_admin_private_key: str | None = None
    treasury_key: str | None = None
    admin_key: str | None = None
    signing_cert_der: bytes | None = None
    tls_cert_hash: bytes | None = None
    gossip_endpoints: list[ServiceEndpoint] = field(default_factory=list)
    grpc_service_endpoints: list[ServiceEndpoint] = field(default_factory=list)
    last_state_zip_path: str | None = None
    skip_stop: bool = False
    result_tracker: ResultTracker = field(default_factory=ResultTracker)


# ============================================================================
# Command context
# ============================================================================

@dataclass
class CommandContext:
    """Collaborators shared by the handlers of one CLI invocation."""

    settings: SoloSettings
    config_manager: ConfigManager
    cluster: ClusterOps
    state_reader: ClusterStateReader
    charts: ChartManager
    accounts: AccountManager
    keys: KeyManager
    platform: PlatformInstaller
    network_nodes: NetworkNodes
    profiles: ProfileManager
    certificates: CertificateManager
    leases: LeaseManager
    snapshots: ContextSnapshotStore
    prompter: Prompter | None = None
