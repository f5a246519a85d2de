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

"""Configuration classes, resolved node configuration, and flag persistence."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from solo_manager.constants import (
    ACCOUNT_UPDATE_BATCH_SIZE,
    DEBUG_NODE_WAIT_SECONDS,
    FREEZE_START_DELAY_SECONDS,
    LEASE_ACQUIRE_ATTEMPTS,
    LEASE_DURATION_SECONDS,
    LOCAL_NODE_START_PORT,
    NETWORK_NODE_ACTIVE_DELAY_SECONDS,
    NETWORK_NODE_ACTIVE_MAX_ATTEMPTS,
    NETWORK_PROXY_DELAY_SECONDS,
    NETWORK_PROXY_MAX_ATTEMPTS,
    NODE_CLIENT_PING_MAX_RETRIES,
    NODE_CLIENT_PING_RETRY_INTERVAL_SECONDS,
    NODE_STATUS_SETTLE_SECONDS,
    POD_RESTART_SLEEP_SECONDS,
    PODS_READY_DELAY_SECONDS,
    PODS_READY_MAX_ATTEMPTS,
    PODS_RUNNING_DELAY_SECONDS,
    PODS_RUNNING_MAX_ATTEMPTS,
    SOLO_CACHE_DIR_NAME,
    SOLO_CONFIG_FILE,
    SOLO_HOME_DIR,
    SOLO_LOGS_DIR_NAME,
    STAKE_WEIGHT_DELAY_SECONDS,
    UPGRADE_FILE_CHUNK_SIZE,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Environment settings
# ============================================================================

class SoloSettings(BaseSettings):
    """Tunable knobs, auto-loaded from SOLO_* env vars.

    Attributes:
        home: Root of the local solo state (keys cache, logs, flag file).
        lease_duration: Seconds a namespace lease stays valid without renewal.
        lease_acquire_attempts: Attempts made before lease acquisition fails.
        lease_retry_delay: Seconds between lease attempts, or None for the lease duration.
        pods_running_max_attempts: Polls made while waiting for pods to run.
        pods_running_delay: Seconds between pod phase polls.
        pods_ready_max_attempts: Polls made while waiting for pod readiness.
        pods_ready_delay: Seconds between pod readiness polls.
        node_active_max_attempts: Metric polls made per node status check.
        node_active_delay: Seconds between node status polls.
        proxy_max_attempts: Polls made while waiting for proxy pods.
        proxy_delay: Seconds between proxy readiness polls.
        node_client_ping_max_retries: Pings made before a node client is rejected.
        node_client_ping_retry_interval: Seconds between node client pings.
        pod_restart_sleep: Seconds to wait after killing node pods.
        stake_weight_delay: Seconds to wait before triggering stake recalculation.
        node_status_settle: Seconds to wait after a node reaches the wanted status.
        debug_node_wait: Seconds to hold while a debugger attaches to a node.
        freeze_start_delay: Seconds in the future a freeze upgrade is scheduled.
        account_update_batch_size: Accounts per key rotation batch.
        upgrade_chunk_size: Maximum bytes per upgrade file transaction.
        local_node_start_port: First local port used for node port-forwards.
        max_concurrency: Worker cap for concurrent pipeline branches, or None.
        ledger_client_factory: ``module:callable`` building a ledger client.
        skip_node_ping: Whether to skip pinging nodes when building a client.
    """

    model_config = SettingsConfigDict(env_prefix="SOLO_", extra="ignore")

    home: Path = SOLO_HOME_DIR
    lease_duration: int = Field(default=LEASE_DURATION_SECONDS, ge=1)
    lease_acquire_attempts: int = Field(default=LEASE_ACQUIRE_ATTEMPTS, ge=1)
    lease_retry_delay: float | None = Field(default=None, ge=0)
    pods_running_max_attempts: int = Field(default=PODS_RUNNING_MAX_ATTEMPTS, ge=1)
    pods_running_delay: float = Field(default=PODS_RUNNING_DELAY_SECONDS, ge=0)
    pods_ready_max_attempts: int = Field(default=PODS_READY_MAX_ATTEMPTS, ge=1)
    pods_ready_delay: float = Field(default=PODS_READY_DELAY_SECONDS, ge=0)
    node_active_max_attempts: int = Field(default=NETWORK_NODE_ACTIVE_MAX_ATTEMPTS, ge=1)
    node_active_delay: float = Field(default=NETWORK_NODE_ACTIVE_DELAY_SECONDS, ge=0)
    proxy_max_attempts: int = Field(default=NETWORK_PROXY_MAX_ATTEMPTS, ge=1)
    proxy_delay: float = Field(default=NETWORK_PROXY_DELAY_SECONDS, ge=0)
    node_client_ping_max_retries: int = Field(default=NODE_CLIENT_PING_MAX_RETRIES, ge=1)
    node_client_ping_retry_interval: float = Field(default=NODE_CLIENT_PING_RETRY_INTERVAL_SECONDS, ge=0)
    pod_restart_sleep: float = Field(default=POD_RESTART_SLEEP_SECONDS, ge=0)
    stake_weight_delay: float = Field(default=STAKE_WEIGHT_DELAY_SECONDS, ge=0)
    node_status_settle: float = Field(default=NODE_STATUS_SETTLE_SECONDS, ge=0)
    debug_node_wait: float = Field(default=DEBUG_NODE_WAIT_SECONDS, ge=0)
    freeze_start_delay: float = Field(default=FREEZE_START_DELAY_SECONDS, ge=0)
    account_update_batch_size: int = Field(default=ACCOUNT_UPDATE_BATCH_SIZE, ge=1)
    upgrade_chunk_size: int = Field(default=UPGRADE_FILE_CHUNK_SIZE, ge=1)
    local_node_start_port: int = Field(default=LOCAL_NODE_START_PORT, ge=1, le=65535)
    max_concurrency: int | None = Field(default=None, ge=1)
    ledger_client_factory: str | None = Field(default=None, pattern=r"^[\w.]+:[\w.]+$")
    skip_node_ping: bool = False

    @property
    def cache_dir(self) -> Path:
        """Directory holding keys, staging trees, and context snapshots."""
        return self.home / SOLO_CACHE_DIR_NAME

    @property
    def logs_dir(self) -> Path:
        """Directory receiving downloaded node logs and states."""
        return self.home / SOLO_LOGS_DIR_NAME

    @property
    def config_file(self) -> Path:
        """File persisting the last used flag values."""
        return self.home / SOLO_CONFIG_FILE


# ============================================================================
# Resolved per-invocation configuration
# ============================================================================

@dataclass(frozen=True)
class NodeConfig:
    """Immutable configuration resolved for one node operation.

    Flag values arrive verbatim from the resolved flag set; the trailing
    block holds fields derived by the phase specific config builder.
    """

    namespace: str | None = None
    cache_dir: str | None = None
    release_tag: str | None = None
    app: str = ""
    app_config: str | None = None
    chain_id: str | None = None
    chart_directory: str | None = None
    solo_chart_version: str | None = None
    debug_node_alias: str | None = None
    dev_mode: bool = False
    endpoint_type: str = "FQDN"
    gossip_endpoints: str | None = None
    grpc_endpoints: str | None = None
    generate_gossip_keys: bool = False
    generate_tls_keys: bool = False
    local_build_path: str | None = None
    node_alias: str | None = None
    node_aliases_unparsed: str | None = None
    admin_key: str | None = None
    admin_public_keys: str | None = None
    new_admin_key: str | None = None
    new_account_number: str | None = None
    tls_public_key: str | None = None
    tls_private_key: str | None = None
    gossip_public_key: str | None = None
    gossip_private_key: str | None = None
    persistent_volume_claims: bool = False
    haproxy_ips: str | None = None
    envoy_ips: str | None = None
    input_dir: str | None = None
    output_dir: str | None = None
    upgrade_zip_file: str | None = None
    state_file: str | None = None
    stake_amounts: str | None = None
    grpc_tls_certificate_path: str | None = None
    grpc_web_tls_certificate_path: str | None = None
    grpc_tls_key_path: str | None = None
    grpc_web_tls_key_path: str | None = None
    force: bool = False
    quiet: bool = False

    # Derived
    node_aliases: tuple[str, ...] = ()
    keys_dir: str | None = None
    staging_dir: str | None = None
    staging_keys_dir: str | None = None
    chart_path: str | None = None


# ============================================================================
# Flag persistence
# ============================================================================

class ConfigManager:
    """Holds flag values for one invocation and persists sticky ones.

    Values given on the command line win over values cached from earlier
    invocations. Only names listed in ``sticky`` are written back.

    Args:
        config_file: YAML file holding cached flag values.
        sticky: Flag names that are persisted between invocations.
    """

    def __init__(self, config_file: Path, sticky: frozenset[str] = frozenset()) -> None:
        self._config_file = Path(config_file)
        self._sticky = sticky
        self._flags: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self._config_file.exists():
            return {}
        with open(self._config_file) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed flag cache %s", self._config_file)
            return {}
        return data.get("flags", {}) or {}

    @property
    def config_file(self) -> Path:
        return self._config_file

    def update(self, argv: dict[str, Any]) -> None:
        """Merge explicitly provided flag values, ignoring unset ones."""
        for name, value in argv.items():
            if value is not None:
                self._flags[name] = value

    def has_flag(self, name: str) -> bool:
        return self._flags.get(name) is not None

    def get_flag(self, name: str, default: Any = None) -> Any:
        value = self._flags.get(name)
        return default if value is None else value

    def set_flag(self, name: str, value: Any) -> None:
        self._flags[name] = value

    def persist(self) -> None:
        """Write sticky flag values to the cache file."""
        cached = {k: v for k, v in sorted(self._flags.items()) if k in self._sticky and v is not None}
        self._config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self._config_file, "w") as f:
            yaml.safe_dump({"flags": cached}, f, default_flow_style=False)
        logger.debug("Persisted %d flag values to %s", len(cached), self._config_file)
