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

"""Task factories for node lifecycle workflows.

Every public method of :class:`NodeTasks` returns a :class:`Leaf` (or a
:class:`Fork`) to be placed in a workflow. Nothing runs until the
pipeline reaches the task; at that point the task reads whatever earlier
tasks left in the :class:`WorkflowContext`.

Alias lists are named by source rather than passed by value, because the
aliases are only known once Initialize and Identify have run:

* ``node_aliases``: the ``--node-aliases`` flag (falling back to the
  existing nodes when the flag is empty)
* ``existing_node_aliases``: nodes found in the cluster
* ``all_node_aliases``: existing nodes plus or minus the changed node
"""

from __future__ import annotations

import base64
import dataclasses
import hashlib
import logging
import os
import re
import time
import zipfile
from datetime import datetime, timedelta, timezone
from typing import Any

from cryptography.hazmat.primitives import serialization

from solo_manager import console
from solo_manager.accounts import account_id_from_number, account_number
from solo_manager.constants import (
    DEFAULT_NETWORK_NODE_NAME,
    FREEZE_ADMIN_ACCOUNT,
    GENESIS_KEY,
    HEDERA_APP_NAME,
    HEDERA_DATA_APPS_DIR,
    HEDERA_DATA_LIB_DIR,
    HEDERA_HAPI_PATH,
    HEDERA_NODE_DEFAULT_STAKE_AMOUNT,
    HEDERA_NODE_EXTERNAL_GOSSIP_PORT,
    HEDERA_NODE_GRPC_PORT,
    HEDERA_NODE_INTERNAL_GOSSIP_PORT,
    HEDERA_NODE_METRICS_URL,
    IGNORED_NODE_ACCOUNT_ID,
    JVM_DEBUG_PORT,
    LABEL_NODE_NAME,
    LABEL_TYPE_HAPROXY,
    LABEL_TYPE_NETWORK_NODE,
    ROOT_CONTAINER,
    SIGNING_KEY_PREFIX,
    SOLO_DEPLOYMENT_RELEASE,
    TREASURY_ACCOUNT_ID,
    UPGRADE_FILE_ID,
    EndpointType,
    NodeStatusCode,
    NodeSubcommandType,
)
from solo_manager.context import CommandContext, NewNode, WorkflowContext
from solo_manager.errors import MissingArgumentError, SoloError
from solo_manager.flags import FlagSet, GENERATE_GOSSIP_KEYS, GENERATE_TLS_KEYS, resolve_flags
from solo_manager.helpers import (
    add_debug_options,
    parse_stake_amounts,
    prepare_endpoints,
    rename_and_copy_file,
    split_flag_input,
)
from solo_manager.keys import compute_certificate_hash, get_der_from_pem_certificate
from solo_manager.kube import PortForward
from solo_manager.lease import IntervalLease
from solo_manager.ledger import (
    AccountUpdateTransaction,
    FileAppendTransaction,
    FileUpdateTransaction,
    FreezeTransaction,
    FreezeType,
    LedgerClient,
    NodeCreateTransaction,
    NodeDeleteTransaction,
    NodeUpdateTransaction,
    execute_transaction,
    public_key_of,
)
from solo_manager.node_configs import ConfigBuilder
from solo_manager.pipeline import Fork, Leaf, TaskHandle
from solo_manager.profiles import bump_config_version
from solo_manager.snapshot import SnapshotParser
from solo_manager.templates import (
    next_node_alias,
    node_id_from_node_alias,
    parse_node_alias_to_ip_mapping,
    render_full_pod_fqdn,
    render_full_svc_fqdn,
    render_gossip_pem_private_key_file,
    render_gossip_pem_public_key_file,
    render_network_pod_name,
    render_node_admin_key_name,
    render_tls_cert_file,
    render_tls_key_file,
)

logger = logging.getLogger(__name__)

PLATFORM_STATUS_METRIC = "platform_PlatformStatus"
FREEZE_ADMIN_TOP_UP_AMOUNT = 100000
SAVED_STATE_DIR = f"{HEDERA_HAPI_PATH}/data/saved/com.hedera.services.ServicesMain"
UPGRADE_CURRENT_DIR = f"{HEDERA_HAPI_PATH}/data/upgrade/current"

_STATE_ROUND = re.compile(r"(\d+)\.zip$")


def parse_platform_status(metrics: str) -> int | None:
    """Status code from the ``platform_PlatformStatus`` metric line, if present."""
    for line in (metrics or "").splitlines():
        if line.startswith(PLATFORM_STATUS_METRIC):
            try:
                return int(float(line.split()[-1]))
            except (IndexError, ValueError):
                return None
    return None


def status_name(status: int) -> str:
    try:
        return NodeStatusCode(status).name
    except ValueError:
        return str(status)


def _resolve_aliases(ctx: WorkflowContext, source: str) -> list[str]:
    if source == "node_aliases":
        return list(ctx.config.node_aliases) or list(ctx.existing_node_aliases)
    return list(getattr(ctx, source))


def _pod_ref(ctx: WorkflowContext, node_alias: str) -> str:
    pod = ctx.pod_refs.get(node_alias)
    if not pod:
        raise SoloError(f"no pod found for nodeAlias: {node_alias}, its network pod is not running")
    return pod


def _is_hedera_app(ctx: WorkflowContext) -> bool:
    return ctx.config.app in ("", HEDERA_APP_NAME)


class NodeTasks:
    """Builds the tasks node workflows are assembled from.

    Args:
        cmd: Collaborators of the current CLI invocation.

    Attributes:
        lease: Namespace lease acquired by Initialize, if any.
        debug_port_forward: JVM debug port-forward opened for the debug node.
    """

    def __init__(self, cmd: CommandContext) -> None:
        self._cmd = cmd
        self._settings = cmd.settings
        self.lease: IntervalLease | None = None
        self.debug_port_forward: PortForward | None = None

    def close(self) -> None:
        """Stop the debug port-forward and release the lease."""
        if self.debug_port_forward is not None:
            self._cmd.cluster.stop_port_forward(self.debug_port_forward)
            self.debug_port_forward = None
        if self.lease is not None:
            lease, self.lease = self.lease, None
            lease.release()

    def _client(self) -> LedgerClient:
        return self._cmd.accounts.require_client()

    # ========================================================================
    # Initialization and snapshots
    # ========================================================================

    def initialize(self, argv: dict[str, Any], flag_set: FlagSet, builder: ConfigBuilder,
                   acquire_lease: bool = True) -> Leaf:
        """Resolve flags, build the phase config and take the namespace lease."""

        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork | None:
            config_manager = self._cmd.config_manager
            config_manager.update(argv)
            values = resolve_flags(config_manager, flag_set, self._cmd.prompter,
                                   {"cache_dir": str(self._settings.cache_dir)})
            ctx.config = builder(self._cmd, ctx, values)
            config_manager.persist()
            logger.debug("Initialized config: %s", ctx.config)
            if not acquire_lease:
                return None
            lease = self._cmd.leases.create(ctx.config.namespace)
            return Fork("Acquire lease", [Leaf("Acquire lease", lambda c, h: self._acquire_lease(lease, h))])

        return Leaf("Initialize", _run)

    def _acquire_lease(self, lease: IntervalLease, handle: TaskHandle) -> None:
        self._cmd.leases.acquire_with_retry(lease, handle)
        self.lease = lease

    def save_context_data(self, parser: SnapshotParser) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            output_dir = ctx.config.output_dir
            if not output_dir:
                raise MissingArgumentError(
                    "Path to export context data not specified. Please set a value for --output-dir")
            path = self._cmd.snapshots.save(output_dir, parser.filename, parser.save(ctx))
            handle.output(f"Context saved to {path}")

        return Leaf("Save context data", _run)

    def load_context_data(self, parser: SnapshotParser) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            input_dir = ctx.config.input_dir
            if not input_dir:
                raise MissingArgumentError(
                    "Path to context data not specified. Please set a value for --input-dir")
            parser.load(ctx, self._cmd.snapshots.load(input_dir, parser.filename))

        return Leaf("Load context data", _run)

    def finalize(self) -> Leaf:
        """Key generation is a one-shot request, so clear it from the flag cache."""

        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            self._cmd.config_manager.set_flag(GENERATE_GOSSIP_KEYS.name, False)
            self._cmd.config_manager.set_flag(GENERATE_TLS_KEYS.name, False)

        return Leaf("Finalize", _run)

    def sleep(self, title: str, seconds: float) -> Leaf:
        return Leaf(title, lambda ctx, handle: time.sleep(seconds))

    # ========================================================================
    # Topology discovery
    # ========================================================================

    def identify_existing_nodes(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            ctx.pod_refs = {}
            ctx.service_map = self._cmd.state_reader.get_node_service_map(ctx.config.namespace)
            ctx.existing_node_aliases = list(ctx.service_map)
            ctx.all_node_aliases = list(ctx.existing_node_aliases)
            return self._check_network_pods(ctx.existing_node_aliases)

        return Leaf("Identify existing network nodes", _run)

    def identify_network_pods(self, max_attempts: int | None = None) -> Leaf:
        """Check the pods of ``--node-aliases``, or of every node when unset."""

        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            if not ctx.config.node_aliases:
                service_map = self._cmd.state_reader.get_node_service_map(ctx.config.namespace)
                ctx.config = dataclasses.replace(ctx.config, node_aliases=tuple(service_map))
            ctx.pod_refs = {}
            return self._check_network_pods(list(ctx.config.node_aliases), max_attempts)

        return Leaf("Identify network pods", _run)

    def _check_network_pods(self, node_aliases: list[str], max_attempts: int | None = None) -> Fork:
        children = [
            Leaf(f"Check network pod: {alias}",
                 lambda ctx, handle, alias=alias: self._check_network_pod_task(ctx, alias, max_attempts))
            for alias in node_aliases
        ]
        return Fork("Check network pods", children, concurrent=True)

    def _check_network_pod_task(self, ctx: WorkflowContext, node_alias: str, max_attempts: int | None) -> None:
        try:
            ctx.pod_refs[node_alias] = self._check_network_node_pod(ctx.config.namespace, node_alias, max_attempts)
        except SoloError as err:
            logger.warning("Network pod of %s is not running: %s", node_alias, err)
            ctx.skip_stop = True

    def _check_network_node_pod(self, namespace: str, node_alias: str, max_attempts: int | None = None) -> str:
        labels = [f"{LABEL_NODE_NAME}={node_alias}", LABEL_TYPE_NETWORK_NODE]
        try:
            self._cmd.state_reader.wait_for_running_pods(
                namespace, labels, 1, max_attempts or self._settings.pods_running_max_attempts,
                self._settings.pods_running_delay)
        except SoloError as err:
            raise SoloError(f"no pod found for nodeAlias: {node_alias}") from err
        return render_network_pod_name(node_alias)

    def check_node_pods_are_running(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            children = [
                Leaf(f"Check Node: {alias}",
                     lambda c, h, alias=alias: self._check_network_node_pod(c.config.namespace, alias))
                for alias in ctx.all_node_aliases
            ]
            return Fork("Check node pods", children)

        return Leaf("Check node pods are running", _run)

    def populate_service_map(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            ctx.service_map = self._cmd.state_reader.get_node_service_map(ctx.config.namespace)
            # pods were recreated, so every ref is stale
            ctx.pod_refs.update({alias: service.node_pod_name for alias, service in ctx.service_map.items()
                                 if service.node_pod_name})

        return Leaf("Refresh node service map", _run)

    def refresh_node_list(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            ctx.all_node_aliases = [a for a in ctx.existing_node_aliases if a != ctx.node_alias]

        return Leaf("Refresh node alias list", _run)

    def check_pvcs_enabled(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            if not ctx.config.persistent_volume_claims:
                raise SoloError("PVCs are not enabled. Please enable PVCs before adding a node")

        return Leaf("Check that PVCs are enabled", _run)

    def determine_new_node_account_number(self) -> Leaf:
        """Pick the next node alias and an account id above every node account."""

        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            max_num = 0
            for service in ctx.service_map.values():
                if service.account_id and service.account_id != IGNORED_NODE_ACCOUNT_ID:
                    max_num = max(max_num, account_number(service.account_id))

            # kubectl lists in name order, so node10 comes before node2
            highest_alias = max(ctx.service_map, key=node_id_from_node_alias, default=DEFAULT_NETWORK_NODE_NAME)
            alias = next_node_alias(highest_alias)
            ctx.max_num = max_num + 1
            ctx.new_node = NewNode(account_id=account_id_from_number(ctx.max_num), name=alias)
            ctx.node_alias = alias
            ctx.config = dataclasses.replace(ctx.config, node_alias=alias)
            ctx.all_node_aliases.append(alias)
            handle.output(f"New node {alias} will use account {ctx.new_node.account_id}")

        return Leaf("Determine new node account number", _run)

    def load_admin_key(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            secret = self._cmd.cluster.read_secret(ctx.config.namespace,
                                                   render_node_admin_key_name(ctx.config.node_alias))
            private_key = (secret or {}).get("data", {}).get("privateKey")
            if private_key:
                ctx.admin_key = base64.b64decode(private_key).decode()
                return
            logger.debug("No admin key secret for %s, using the genesis key", ctx.config.node_alias)
            ctx.admin_key = GENESIS_KEY

        return Leaf("Load node admin key", _run)

    # ========================================================================
    # Keys and certificates
    # ========================================================================

    def copy_grpc_tls_certificates(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            cfg = ctx.config
            return self._cmd.certificates.build_copy_tls_certificates_tasks(
                cfg.namespace, cfg.grpc_tls_certificate_path, cfg.grpc_web_tls_certificate_path,
                cfg.grpc_tls_key_path, cfg.grpc_web_tls_key_path)

        return Leaf("Copy gRPC TLS Certificates", _run,
                    skip=lambda ctx: not ctx.config.grpc_tls_certificate_path
                    and not ctx.config.grpc_web_tls_certificate_path)

    def generate_gossip_keys(self, multiple: bool = True) -> Leaf:
        """Gossip keys for ``--node-aliases``, or for the single node being added."""

        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            aliases = _resolve_aliases(ctx, "node_aliases") if multiple else [ctx.config.node_alias]
            return self._cmd.keys.task_generate_gossip_keys(aliases, ctx.config.keys_dir, ctx.cur_date)

        return Leaf("Generate gossip keys", _run, skip=lambda ctx: not ctx.config.generate_gossip_keys)

    def generate_grpc_tls_keys(self, multiple: bool = True) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            aliases = _resolve_aliases(ctx, "node_aliases") if multiple else [ctx.config.node_alias]
            return self._cmd.keys.task_generate_tls_keys(aliases, ctx.config.keys_dir, ctx.cur_date)

        return Leaf("Generate gRPC TLS Keys", _run, skip=lambda ctx: not ctx.config.generate_tls_keys)

    def load_signing_key_certificate(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            signing_key = self._cmd.keys.load_signing_key(ctx.config.node_alias, ctx.config.keys_dir)
            ctx.signing_cert_der = signing_key.certificate.public_bytes(serialization.Encoding.DER)

        return Leaf("Load signing key certificate", _run)

    def compute_mtls_certificate_hash(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            path = os.path.join(ctx.config.keys_dir, render_tls_cert_file(ctx.config.node_alias))
            ctx.tls_cert_hash = compute_certificate_hash(path)

        return Leaf("Compute mTLS certificate hash", _run)

    def prepare_staging_directory(self, source: str) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            aliases = _resolve_aliases(ctx, source)
            cfg = ctx.config
            return Fork("Prepare staging directory", [
                Leaf("Copy Gossip keys to staging",
                     lambda c, h: self._cmd.keys.copy_gossip_keys_to_staging(
                         cfg.keys_dir, cfg.staging_keys_dir, aliases)),
                Leaf("Copy gRPC TLS keys to staging",
                     lambda c, h: self._cmd.keys.copy_tls_keys_to_staging(
                         cfg.keys_dir, cfg.staging_keys_dir, aliases)),
            ])

        return Leaf("Prepare staging directory", _run)

    def copy_node_keys_to_secrets(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            return self._cmd.platform.copy_node_keys(ctx.config.namespace, ctx.config.staging_dir,
                                                     list(ctx.all_node_aliases))

        return Leaf("Copy node keys to secrets", _run)

    # ========================================================================
    # Endpoints
    # ========================================================================

    def prepare_gossip_endpoints(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            cfg = ctx.config
            if cfg.gossip_endpoints:
                endpoints = split_flag_input(cfg.gossip_endpoints)
            else:
                if cfg.endpoint_type != EndpointType.FQDN.value:
                    raise SoloError(f"--gossip-endpoints must be set if --endpoint-type is: {EndpointType.IP.value}")
                endpoints = [
                    f"{render_full_pod_fqdn(cfg.node_alias, cfg.namespace)}:{HEDERA_NODE_INTERNAL_GOSSIP_PORT}",
                    f"{render_full_svc_fqdn(cfg.node_alias, cfg.namespace)}:{HEDERA_NODE_EXTERNAL_GOSSIP_PORT}",
                ]
            ctx.gossip_endpoints = prepare_endpoints(cfg.endpoint_type, endpoints, HEDERA_NODE_INTERNAL_GOSSIP_PORT)

        return Leaf("Prepare gossip endpoints", _run)

    def prepare_grpc_service_endpoints(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            cfg = ctx.config
            if cfg.grpc_endpoints:
                endpoints = split_flag_input(cfg.grpc_endpoints)
            else:
                if cfg.endpoint_type != EndpointType.FQDN.value:
                    raise SoloError(f"--grpc-endpoints must be set if --endpoint-type is: {EndpointType.IP.value}")
                endpoints = [f"{render_full_svc_fqdn(cfg.node_alias, cfg.namespace)}:{HEDERA_NODE_GRPC_PORT}"]
            ctx.grpc_service_endpoints = prepare_endpoints(cfg.endpoint_type, endpoints, HEDERA_NODE_GRPC_PORT)

        return Leaf("Prepare grpc service endpoints", _run)

    # ========================================================================
    # Upgrade file
    # ========================================================================

    def prepare_upgrade_zip(self) -> Leaf:
        """Upload the upgrade zip (or a generated mock) to the upgrade file."""

        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            zip_file = ctx.config.upgrade_zip_file
            if zip_file:
                handle.output(f"Using upgrade zip file: {zip_file}")
            else:
                zip_file = build_mock_upgrade_zip(ctx.config.staging_dir)
            ctx.upgrade_zip_file = zip_file
            ctx.upgrade_zip_hash = self.upload_upgrade_zip(zip_file, self._client())

        return Leaf("Prepare upgrade zip file for node upgrade process", _run)

    def upload_upgrade_zip(self, upgrade_zip_file: str, client: LedgerClient) -> str:
        """Write the zip into the upgrade file in chunks.

        The first chunk replaces the file contents and the rest are appended.

        Returns:
            The SHA-384 hex digest of the whole zip.

        Raises:
            SoloError: If reading the zip or any chunk transaction fails.
        """
        chunk_size = self._settings.upgrade_chunk_size
        try:
            with open(upgrade_zip_file, "rb") as f:
                zip_bytes = f.read()
            zip_hash = hashlib.sha384(zip_bytes).hexdigest()
            logger.debug("loaded upgrade zip file [zipHash = %s, length = %d, path = %s]",
                         zip_hash, len(zip_bytes), upgrade_zip_file)
            for start in range(0, len(zip_bytes), chunk_size):
                chunk = zip_bytes[start:start + chunk_size]
                if start == 0:
                    tx = FileUpdateTransaction(file_id=UPGRADE_FILE_ID, contents=chunk)
                else:
                    tx = FileAppendTransaction(file_id=UPGRADE_FILE_ID, contents=chunk)
                execute_transaction(client, tx, context=UPGRADE_FILE_ID)
                logger.debug("uploaded %d bytes of %d bytes", min(start + chunk_size, len(zip_bytes)),
                             len(zip_bytes))
        except (OSError, SoloError) as err:
            raise SoloError(f"failed to upload build.zip file: {err}") from err
        return zip_hash

    # ========================================================================
    # Ledger transactions
    # ========================================================================

    def check_existing_nodes_staked_amount(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            account_map = self._cmd.accounts.get_node_account_map(ctx.existing_node_aliases, ctx.service_map)
            for alias in ctx.existing_node_aliases:
                self._cmd.accounts.transfer_amount(TREASURY_ACCOUNT_ID, account_map[alias], 1)

        return Leaf("Check existing nodes staked amount", _run)

    def send_node_create_transaction(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            try:
                tx = NodeCreateTransaction(
                    account_id=ctx.new_node.account_id,
                    gossip_endpoints=tuple(ctx.gossip_endpoints),
                    service_endpoints=tuple(ctx.grpc_service_endpoints),
                    gossip_ca_certificate=ctx.signing_cert_der,
                    certificate_hash=ctx.tls_cert_hash,
                    admin_key=public_key_of(ctx.admin_key),
                )
                receipt = execute_transaction(self._client(), tx, ctx.admin_key, context=ctx.new_node.name)
                logger.debug("NodeCreateReceipt: %s", receipt)
            except SoloError as err:
                raise SoloError(f"Error adding node to network: {err}") from err

        return Leaf("Send node create transaction", _run)

    def send_node_update_transaction(self) -> Leaf:
        """Rotate the node's TLS or gossip keys, account id and admin key."""

        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            cfg = ctx.config
            try:
                if len(ctx.existing_node_aliases) > 1:
                    self._cmd.accounts.refresh_node_client(cfg.namespace, cfg.node_alias)

                changes: dict[str, Any] = {}
                if cfg.tls_public_key and cfg.tls_private_key:
                    changes["certificate_hash"] = compute_certificate_hash(cfg.tls_public_key)
                    rename_and_copy_file(cfg.tls_public_key, render_tls_cert_file(cfg.node_alias), cfg.keys_dir)
                    rename_and_copy_file(cfg.tls_private_key, render_tls_key_file(cfg.node_alias), cfg.keys_dir)
                if cfg.gossip_public_key and cfg.gossip_private_key:
                    changes["gossip_ca_certificate"] = get_der_from_pem_certificate(cfg.gossip_public_key)
                    rename_and_copy_file(cfg.gossip_public_key,
                                         render_gossip_pem_public_key_file(cfg.node_alias), cfg.keys_dir)
                    rename_and_copy_file(cfg.gossip_private_key,
                                         render_gossip_pem_private_key_file(cfg.node_alias), cfg.keys_dir)
                if cfg.new_account_number:
                    changes["account_id"] = cfg.new_account_number

                signers = [ctx.admin_key]
                if cfg.new_admin_key:
                    changes["admin_key"] = public_key_of(cfg.new_admin_key)
                    signers.append(cfg.new_admin_key)

                tx = NodeUpdateTransaction(node_id=node_id_from_node_alias(cfg.node_alias), **changes)
                receipt = execute_transaction(self._client(), tx, *signers, context=cfg.node_alias)
                logger.debug("NodeUpdateReceipt: %s", receipt)
            except (OSError, SoloError) as err:
                raise SoloError(f"Error updating node to network: {err}") from err

        return Leaf("Send node update transaction", _run)

    def send_node_delete_transaction(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            try:
                tx = NodeDeleteTransaction(node_id=node_id_from_node_alias(ctx.config.node_alias))
                receipt = execute_transaction(self._client(), tx, ctx.admin_key, context=ctx.config.node_alias)
                logger.debug("NodeDeleteReceipt: %s", receipt)
            except SoloError as err:
                raise SoloError(f"Error deleting node from network: {err}") from err

        return Leaf("Send node delete transaction", _run)

    def send_prepare_upgrade_transaction(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            try:
                client = self._client()
                logger.debug("Freeze admin account balance: %s", client.get_account_balance(FREEZE_ADMIN_ACCOUNT))
                self._cmd.accounts.transfer_amount(TREASURY_ACCOUNT_ID, FREEZE_ADMIN_ACCOUNT,
                                                   FREEZE_ADMIN_TOP_UP_AMOUNT)
                client.set_operator(FREEZE_ADMIN_ACCOUNT, ctx.freeze_admin_private_key)
                tx = FreezeTransaction(FreezeType.PREPARE_UPGRADE, file_id=UPGRADE_FILE_ID,
                                       file_hash=ctx.upgrade_zip_hash)
                receipt = execute_transaction(client, tx, ctx.freeze_admin_private_key, context=UPGRADE_FILE_ID)
                logger.debug("sent prepare upgrade transaction [id: %s], %s", UPGRADE_FILE_ID, receipt.status)
            except SoloError as err:
                raise SoloError(f"Error in prepare upgrade: {err}") from err

        return Leaf("Send prepare upgrade transaction", _run)

    def send_freeze_upgrade_transaction(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            try:
                client = self._client()
                client.set_operator(FREEZE_ADMIN_ACCOUNT, ctx.freeze_admin_private_key)
                tx = FreezeTransaction(FreezeType.FREEZE_UPGRADE, file_id=UPGRADE_FILE_ID,
                                       file_hash=ctx.upgrade_zip_hash, start_time=self._freeze_start_time())
                receipt = execute_transaction(client, tx, ctx.freeze_admin_private_key, context=UPGRADE_FILE_ID)
                logger.debug("Upgrade prepared with transaction status: %s", receipt.status)
            except SoloError as err:
                raise SoloError(f"Error in freeze upgrade: {err}") from err

        return Leaf("Send freeze upgrade transaction", _run)

    def send_freeze_transaction(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            try:
                client = self._cmd.accounts.load_node_client(ctx.config.namespace)
                client.set_operator(FREEZE_ADMIN_ACCOUNT, ctx.freeze_admin_private_key)
                tx = FreezeTransaction(FreezeType.FREEZE_ONLY, start_time=self._freeze_start_time())
                receipt = execute_transaction(client, tx, ctx.freeze_admin_private_key)
                logger.debug("Freeze transaction status: %s", receipt.status)
            except SoloError as err:
                raise SoloError(f"Error in sending freeze transaction: {err}") from err

        return Leaf("Send freeze only transaction", _run)

    def _freeze_start_time(self) -> datetime:
        return datetime.now(timezone.utc) + timedelta(seconds=self._settings.freeze_start_delay)

    # ========================================================================
    # Staking
    # ========================================================================

    def _add_stake(self, namespace: str, account_id: str, node_alias: str,
                   stake_amount: int = HEDERA_NODE_DEFAULT_STAKE_AMOUNT) -> None:
        accounts = self._cmd.accounts
        try:
            client = accounts.load_node_client(namespace)
            treasury = accounts.get_treasury_account_keys(namespace)
            client.set_operator(TREASURY_ACCOUNT_ID, treasury.private_key)
            logger.debug("Account %s balance: %s", account_id, client.get_account_balance(account_id))

            accounts.transfer_amount(TREASURY_ACCOUNT_ID, account_id, stake_amount)
            tx = AccountUpdateTransaction(account_id=account_id,
                                          staked_node_id=node_id_from_node_alias(node_alias))
            receipt = execute_transaction(client, tx, treasury.private_key, context=account_id)
            logger.debug("The transaction consensus status is %s", receipt.status)
        except SoloError as err:
            raise SoloError(f"Error in adding stake: {err}") from err

    def add_node_stakes(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            aliases = _resolve_aliases(ctx, "node_aliases")
            amounts = parse_stake_amounts(ctx.config.stake_amounts)
            account_map = self._cmd.accounts.get_node_account_map(aliases, ctx.service_map)
            children = []
            for index, alias in enumerate(aliases):
                amount = amounts[index] if index < len(amounts) else HEDERA_NODE_DEFAULT_STAKE_AMOUNT
                children.append(Leaf(
                    f"Adding stake for node: {alias}",
                    lambda c, h, alias=alias, amount=amount: self._add_stake(
                        c.config.namespace, account_map[alias], alias, amount),
                ))
            return Fork("Add node stakes", children)

        return Leaf("Add node stakes", _run, skip=lambda ctx: not _is_hedera_app(ctx))

    def stake_new_node(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            self._cmd.accounts.refresh_node_client(ctx.config.namespace, ctx.node_alias)
            self._add_stake(ctx.config.namespace, ctx.new_node.account_id, ctx.node_alias)

        return Leaf("Stake new node", _run)

    def trigger_stake_weight_calculate(self, transaction_type: NodeSubcommandType) -> Leaf:
        """Nudge every node account so the next staking period sees the new weights."""

        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            handle.output("sleep 60 seconds for the handler to be able to trigger the network node stake weight "
                          "recalculate")
            time.sleep(self._settings.stake_weight_delay)
            accounts = self._cmd.accounts
            account_map = accounts.get_node_account_map(ctx.all_node_aliases, ctx.service_map)
            skip_alias = None
            if transaction_type == NodeSubcommandType.UPDATE and ctx.config.new_account_number:
                account_map[ctx.config.node_alias] = ctx.config.new_account_number
                skip_alias = ctx.config.node_alias
            elif transaction_type == NodeSubcommandType.DELETE:
                account_map.pop(ctx.config.node_alias, None)
                skip_alias = ctx.config.node_alias

            client = accounts.refresh_node_client(ctx.config.namespace, skip_alias)
            treasury_key = ctx.treasury_key or accounts.get_treasury_account_keys(ctx.config.namespace).private_key
            for account_id in account_map.values():
                client.set_operator(TREASURY_ACCOUNT_ID, treasury_key)
                accounts.transfer_amount(TREASURY_ACCOUNT_ID, account_id, 1)

        return Leaf("Trigger stake weight calculate", _run)

    # ========================================================================
    # Node status
    # ========================================================================

    def check_all_nodes_are_active(self, source: str) -> Leaf:
        return self._check_nodes_status("Check all nodes are ACTIVE", source, NodeStatusCode.ACTIVE)

    def check_all_nodes_are_frozen(self, source: str) -> Leaf:
        return self._check_nodes_status("Check all nodes are FROZEN", source, NodeStatusCode.FREEZE_COMPLETE)

    def _check_nodes_status(self, title: str, source: str, status: NodeStatusCode) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            children = []
            for alias in _resolve_aliases(ctx, source):
                node_title = f"Check network pod: {alias}"
                children.append(Leaf(
                    node_title,
                    lambda c, h, alias=alias, node_title=node_title: self._check_network_node_activeness(
                        c, h, alias, status, node_title),
                ))
            return Fork(title, children, concurrent=True)

        return Leaf(title, _run, skip=lambda ctx: not _is_hedera_app(ctx))

    def _check_network_node_activeness(self, ctx: WorkflowContext, handle: TaskHandle, node_alias: str,
                                       status: NodeStatusCode, title: str) -> None:
        """Poll the node's platform status metric until it reports ``status``.

        A node reporting CATASTROPHIC_FAILURE fails at once.

        Raises:
            SoloError: If the status is not reached within the attempt budget.
        """
        namespace = ctx.config.namespace
        pod = render_network_pod_name(node_alias)
        max_attempts = self._settings.node_active_max_attempts
        delay = self._settings.node_active_delay

        if node_alias == ctx.config.debug_node_alias and status != NodeStatusCode.FREEZE_COMPLETE:
            handle.title = f"{title} - Please attach JVM debugger now..."
            time.sleep(self._settings.debug_node_wait)

        command = f"curl -s {HEDERA_NODE_METRICS_URL} | grep {PLATFORM_STATUS_METRIC} | grep -v \\#"
        attempt = 0
        success = False
        while attempt < max_attempts:
            try:
                metrics = self._cmd.cluster.exec_container(namespace, pod, ROOT_CONTAINER, command)
                current = parse_platform_status(metrics)
                if current is None:
                    handle.title = f"{title} - status STARTING, attempt: {attempt}/{max_attempts}"
                elif current == status:
                    handle.title = f"{title} - status {status.name}, attempt: {attempt}/{max_attempts}"
                    success = True
                    break
                elif current == NodeStatusCode.CATASTROPHIC_FAILURE:
                    handle.title = f"{title} - status CATASTROPHIC_FAILURE, attempt: {attempt}/{max_attempts}"
                    break
                else:
                    handle.title = f"{title} - status {status_name(current)}, attempt: {attempt}/{max_attempts}"
            except SoloError as err:
                logger.debug("%s : %s", title, err)
            attempt += 1
            time.sleep(delay)

        if not success:
            raise SoloError(f"node '{node_alias}' is not {status.name}"
                            f"[ attempt = {attempt}/{max_attempts} ]")
        time.sleep(self._settings.node_status_settle)
        ctx.pod_refs[node_alias] = pod

    def check_node_proxies_are_active(self) -> Leaf:
        return self._check_proxies("node_aliases", skip=lambda ctx: not _is_hedera_app(ctx))

    def check_all_node_proxies_are_active(self) -> Leaf:
        return self._check_proxies("all_node_aliases")

    def _check_proxies(self, source: str, skip=False) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            children = [
                Leaf(f"Check proxy for node: {alias}",
                     lambda c, h, alias=alias: self._cmd.state_reader.wait_for_pod_ready(
                         c.config.namespace, [f"app=haproxy-{alias}", LABEL_TYPE_HAPROXY], 1,
                         self._settings.proxy_max_attempts, self._settings.proxy_delay))
                for alias in _resolve_aliases(ctx, source)
            ]
            return Fork("Check proxies", children)

        return Leaf("Check node proxies are ACTIVE", _run, skip=skip)

    # ========================================================================
    # Node processes
    # ========================================================================

    def stop_nodes(self, source: str) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork | None:
            if ctx.skip_stop:
                handle.output("Some network pods are missing, nodes are not stopped")
                return None
            self._cmd.accounts.close()
            children = [
                Leaf(f"Stop node: {alias}",
                     lambda c, h, alias=alias: self._cmd.cluster.exec_container(
                         c.config.namespace, _pod_ref(c, alias), ROOT_CONTAINER, "systemctl stop network-node"))
                for alias in _resolve_aliases(ctx, source)
            ]
            return Fork("Stop nodes", children, concurrent=True)

        return Leaf("Stopping nodes", _run)

    def start_nodes(self, source: str) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            children = [
                Leaf(f"Start node: {alias}",
                     lambda c, h, alias=alias: self._cmd.cluster.exec_container(
                         c.config.namespace, _pod_ref(c, alias), ROOT_CONTAINER,
                         ["systemctl", "restart", "network-node"]))
                for alias in _resolve_aliases(ctx, source)
            ]
            return Fork("Start nodes", children, concurrent=True)

        return Leaf("Starting nodes", _run)

    def enable_port_forwarding(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            alias = ctx.config.debug_node_alias
            self.debug_port_forward = self._cmd.cluster.port_forward(
                ctx.config.namespace, render_network_pod_name(alias), JVM_DEBUG_PORT, JVM_DEBUG_PORT)
            handle.output(f"JVM debugger of {alias} available on localhost:{JVM_DEBUG_PORT}")

        return Leaf("Enable port forwarding for JVM debugger", _run,
                    skip=lambda ctx: not ctx.config.debug_node_alias)

    def kill_nodes(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            for service in ctx.service_map.values():
                self._cmd.cluster.delete_pod(ctx.config.namespace, service.node_pod_name)

        return Leaf("Kill nodes", _run)

    def kill_nodes_and_update_config_map(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            namespace = ctx.config.namespace
            ctx.service_map = self._cmd.state_reader.get_node_service_map(namespace)
            for service in ctx.service_map.values():
                self._cmd.cluster.delete_pod(namespace, service.node_pod_name)

            ctx.service_map = self._cmd.state_reader.get_node_service_map(namespace)
            ctx.pod_refs = {alias: service.node_pod_name for alias, service in ctx.service_map.items()}

        return Leaf("Kill nodes to pick up updated configMaps", _run)

    def dump_network_nodes_save_state(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            children = [
                Leaf(f"Node: {alias}",
                     lambda c, h, alias=alias: self._cmd.cluster.exec_container(
                         c.config.namespace, _pod_ref(c, alias), ROOT_CONTAINER,
                         f"rm -rf {HEDERA_HAPI_PATH}/data/saved/*"))
                for alias in _resolve_aliases(ctx, "node_aliases")
            ]
            return Fork("Dump network nodes saved state", children, concurrent=True)

        return Leaf("Dump network nodes saved state", _run)

    # ========================================================================
    # Platform software
    # ========================================================================

    def fetch_platform_software(self, source: str) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            cfg = ctx.config
            aliases = _resolve_aliases(ctx, source)
            pod_refs = {alias: _pod_ref(ctx, alias) for alias in aliases}
            if cfg.local_build_path:
                return self._cmd.platform.task_upload_local_build(
                    cfg.namespace, aliases, pod_refs, cfg.local_build_path, cfg.app_config)
            return self._cmd.platform.task_fetch_platform(cfg.namespace, aliases, pod_refs, cfg.release_tag)

        return Leaf("Fetch platform software into network nodes", _run)

    def setup_network_nodes(self, source: str) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> Fork:
            children = [
                Leaf(f"Node: {alias}",
                     lambda c, h, alias=alias: self._cmd.platform.task_setup(c.config.namespace, _pod_ref(c, alias)))
                for alias in _resolve_aliases(ctx, source)
            ]
            return Fork("Setup network nodes", children, concurrent=True)

        return Leaf("Setup network nodes", _run)

    # ========================================================================
    # Files and state transfer
    # ========================================================================

    def _pick_source_node(self, ctx: WorkflowContext) -> str:
        existing = ctx.existing_node_aliases
        if not existing:
            raise SoloError("no existing network node to download files from")
        if ctx.config.node_alias == existing[0] and len(existing) > 1:
            return existing[1]
        return existing[0]

    def download_node_generated_files(self) -> Leaf:
        """Fetch config.txt, signing keys and application.properties made during freeze."""

        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            cfg = ctx.config
            cluster = self._cmd.cluster
            alias = self._pick_source_node(ctx)
            pod = ctx.pod_refs.get(alias) or render_network_pod_name(alias)
            namespace = cfg.namespace

            cluster.copy_from(namespace, pod, ROOT_CONTAINER, f"{UPGRADE_CURRENT_DIR}/config.txt", cfg.staging_dir)

            keys_dir = f"{UPGRADE_CURRENT_DIR}/data/keys"
            if not cluster.has_dir(namespace, pod, ROOT_CONTAINER, keys_dir):
                keys_dir = UPGRADE_CURRENT_DIR
            cluster.exec_container(namespace, pod, ROOT_CONTAINER,
                                   f"mkdir -p {HEDERA_HAPI_PATH}/data/keys_backup && "
                                   f"cp -r {keys_dir} {HEDERA_HAPI_PATH}/data/keys_backup/")
            for name, is_dir in cluster.list_dir(namespace, pod, ROOT_CONTAINER, keys_dir):
                if not is_dir and name.startswith(SIGNING_KEY_PREFIX):
                    cluster.copy_from(namespace, pod, ROOT_CONTAINER, f"{keys_dir}/{name}", cfg.keys_dir)

            properties = f"{UPGRADE_CURRENT_DIR}/application.properties"
            if cluster.has_file(namespace, pod, ROOT_CONTAINER, properties):
                cluster.copy_from(namespace, pod, ROOT_CONTAINER, properties,
                                  os.path.join(cfg.staging_dir, "templates"))

        return Leaf("Download generated files from an existing node", _run)

    def download_node_upgrade_files(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            cfg = ctx.config
            cluster = self._cmd.cluster
            alias = cfg.node_aliases[0] if cfg.node_aliases else ctx.existing_node_aliases[0]
            pod = ctx.pod_refs.get(alias) or render_network_pod_name(alias)
            for directory in (UPGRADE_CURRENT_DIR,
                              f"{UPGRADE_CURRENT_DIR}/{HEDERA_DATA_APPS_DIR}",
                              f"{UPGRADE_CURRENT_DIR}/{HEDERA_DATA_LIB_DIR}"):
                if not cluster.has_dir(cfg.namespace, pod, ROOT_CONTAINER, directory):
                    continue
                for name, is_dir in cluster.list_dir(cfg.namespace, pod, ROOT_CONTAINER, directory):
                    if is_dir or name.endswith(".mf"):
                        continue
                    cluster.copy_from(cfg.namespace, pod, ROOT_CONTAINER, f"{directory}/{name}", cfg.staging_dir)

        return Leaf("Download upgrade files from an existing node", _run)

    def get_node_logs_and_configs(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            paths = self._cmd.network_nodes.get_logs(ctx.config.namespace)
            handle.output(f"Downloaded {len([p for p in paths if p])} log archive(s)")

        return Leaf("Get node logs and configs", _run)

    def get_node_state_files(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            for alias in _resolve_aliases(ctx, "node_aliases"):
                self._cmd.network_nodes.get_states_from_pod(ctx.config.namespace, alias)

        return Leaf("Get node states", _run)

    def upload_state_files(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            cfg = ctx.config
            cluster = self._cmd.cluster
            saved_dir = f"{HEDERA_HAPI_PATH}/data/saved"
            zip_name = os.path.basename(cfg.state_file)
            for alias in _resolve_aliases(ctx, "node_aliases"):
                pod = _pod_ref(ctx, alias)
                handle.output(f"Uploading state files to pod {pod}")
                cluster.copy_to(cfg.namespace, pod, ROOT_CONTAINER, cfg.state_file, f"{HEDERA_HAPI_PATH}/data")
                cluster.exec_container(cfg.namespace, pod, ROOT_CONTAINER, f"rm -rf {saved_dir}/*")
                cluster.exec_container(cfg.namespace, pod, ROOT_CONTAINER,
                                       f"tar -xvf {HEDERA_HAPI_PATH}/data/{zip_name} -C {saved_dir}")

        return Leaf("Upload state files network nodes", _run, skip=lambda ctx: not ctx.config.state_file)

    def download_last_state(self) -> Leaf:
        """Archive the newest saved round of the first node and download it."""

        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            cfg = ctx.config
            alias = ctx.existing_node_aliases[0]
            pod = _pod_ref(ctx, alias)
            upgrade_dir = f"{SAVED_STATE_DIR}/0/123"
            zip_name = self._cmd.cluster.exec_container(
                cfg.namespace, pod, ROOT_CONTAINER,
                f'cd {upgrade_dir} && mapfile -t states < <(ls -1t .) && '
                f'jar cf "${{states[0]}}.zip" -C "${{states[0]}}" . && echo -n ${{states[0]}}.zip').strip()
            ctx.last_state_zip_path = self._cmd.cluster.copy_from(
                cfg.namespace, pod, ROOT_CONTAINER, f"{upgrade_dir}/{zip_name}", cfg.staging_dir)
            logger.debug("Downloaded last state %s", ctx.last_state_zip_path)

        return Leaf("Download last state from an existing node", _run)

    def upload_state_to_new_node(self) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            cfg = ctx.config
            cluster = self._cmd.cluster
            pod = _pod_ref(ctx, ctx.node_alias)
            zip_path = ctx.last_state_zip_path
            match = _STATE_ROUND.search(zip_path or "")
            if not match:
                raise SoloError(f"cannot derive state round from {zip_path}")
            node_id = node_id_from_node_alias(ctx.node_alias)
            saved_dir = f"{SAVED_STATE_DIR}/{node_id}/123/{match.group(1)}"
            zip_name = os.path.basename(zip_path)

            cluster.exec_container(cfg.namespace, pod, ROOT_CONTAINER, ["mkdir", "-p", saved_dir])
            cluster.copy_to(cfg.namespace, pod, ROOT_CONTAINER, zip_path, saved_dir)
            self._cmd.platform.set_path_permission(cfg.namespace, pod, HEDERA_HAPI_PATH)
            cluster.exec_container(cfg.namespace, pod, ROOT_CONTAINER,
                                   f"cd {saved_dir} && jar xf {zip_name} && rm -f {zip_name}")

        return Leaf("Upload last saved state to new network node", _run)

    # ========================================================================
    # Chart
    # ========================================================================

    def update_chart_with_config_map(self, title: str, transaction_type: NodeSubcommandType,
                                     skip=False) -> Leaf:
        def _run(ctx: WorkflowContext, handle: TaskHandle) -> None:
            cfg = ctx.config
            if not ctx.service_map:
                ctx.service_map = self._cmd.state_reader.get_node_service_map(cfg.namespace)
            values_args, debug_index = build_node_values_args(ctx, transaction_type)

            profile_values = self._cmd.profiles.prepare_values_for_node_transaction(
                os.path.join(cfg.staging_dir, "config.txt"),
                os.path.join(cfg.staging_dir, "templates", "application.properties"))
            if profile_values:
                values_args.extend(["--values", profile_values])
            add_debug_options(values_args, cfg.debug_node_alias, debug_index)

            self._cmd.charts.upgrade(cfg.namespace, SOLO_DEPLOYMENT_RELEASE, cfg.chart_path,
                                     cfg.solo_chart_version, values_args)
            if transaction_type == NodeSubcommandType.DELETE:
                ctx.service_map.pop(cfg.node_alias, None)

        return Leaf(title, _run, skip=skip)


def build_node_values_args(ctx: WorkflowContext, transaction_type: NodeSubcommandType) -> tuple[list[str], int]:
    """Helm ``--set`` arguments describing every consensus node.

    Nodes are indexed by node id. An updated node takes its new account
    number, a deleted node keeps its slot with the ignored account id, and
    an added node is appended after the highest node id.

    Returns:
        The arguments and the chart index of the debug node.
    """
    cfg = ctx.config
    services = sorted(ctx.service_map.values(),
                      key=lambda s: s.node_id if s.node_id is not None else len(ctx.service_map))
    values_args: list[str] = []
    debug_index = 0
    max_node_id = -1

    for index, service in enumerate(services):
        account_id = service.account_id
        if service.node_alias == cfg.node_alias:
            if transaction_type == NodeSubcommandType.UPDATE and cfg.new_account_number:
                account_id = cfg.new_account_number
            elif transaction_type == NodeSubcommandType.DELETE:
                account_id = IGNORED_NODE_ACCOUNT_ID
        node_id = service.node_id if service.node_id is not None else index
        max_node_id = max(max_node_id, node_id)
        values_args.extend(_node_set_args(index, account_id, service.node_alias, node_id))
        if service.node_alias == cfg.debug_node_alias:
            debug_index = index

    if transaction_type == NodeSubcommandType.ADD:
        index = len(services)
        values_args.extend(_node_set_args(index, ctx.new_node.account_id, ctx.new_node.name, max_node_id + 1))
        haproxy_ips = parse_node_alias_to_ip_mapping(cfg.haproxy_ips)
        envoy_ips = parse_node_alias_to_ip_mapping(cfg.envoy_ips)
        if ctx.new_node.name in haproxy_ips:
            values_args.extend(["--set", f"hedera.nodes[{index}].haproxyStaticIP={haproxy_ips[ctx.new_node.name]}"])
        if ctx.new_node.name in envoy_ips:
            values_args.extend(["--set",
                                f"hedera.nodes[{index}].envoyProxyStaticIP={envoy_ips[ctx.new_node.name]}"])
        if ctx.new_node.name == cfg.debug_node_alias:
            debug_index = index

    return values_args, debug_index


def _node_set_args(index: int, account_id: str | None, name: str, node_id: int) -> list[str]:
    return [
        "--set", f"hedera.nodes[{index}].accountId={account_id}",
        "--set", f"hedera.nodes[{index}].name={name}",
        "--set", f"hedera.nodes[{index}].nodeId={node_id}",
    ]


# ============================================================================
# Mock upgrade zip
# ============================================================================

def build_mock_upgrade_zip(staging_dir: str) -> str:
    """Zip a version-bumped ``application.properties`` as a stand-in upgrade.

    The network only needs a file to freeze on, so the real platform build
    is never uploaded.

    Raises:
        SoloError: If the staged ``application.properties`` template is missing.
    """
    template = os.path.join(staging_dir, "templates", "application.properties")
    if not os.path.isfile(template):
        raise SoloError(f"application.properties template not found: {template}")

    upgrade_root = os.path.join(staging_dir, "mock-upgrade")
    config_dir = os.path.join(upgrade_root, "data", "config")
    os.makedirs(config_dir, exist_ok=True)

    with open(template) as f:
        lines = [line.strip() for line in f.read().split("\n")]
    properties = os.path.join(config_dir, "application.properties")
    with open(properties, "w") as f:
        f.write("\n".join(line for line in lines if len(line.split("=")) == 2))
    bump_config_version(properties)

    zip_path = os.path.join(staging_dir, "mock-upgrade.zip")
    with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as archive:
        for root, _, files in os.walk(upgrade_root):
            for name in sorted(files):
                path = os.path.join(root, name)
                archive.write(path, os.path.relpath(path, upgrade_root))
    console.print(f"[yellow]ℹ️  Built mock upgrade zip {zip_path}[/yellow]")
    return zip_path
