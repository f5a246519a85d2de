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

"""Ledger accounts: node client lifecycle, account keys, and transfers."""

from __future__ import annotations

import base64
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from tenacity import RetryError, Retrying, stop_after_attempt, wait_fixed

from solo_manager.config import SoloSettings
from solo_manager.constants import (
    FREEZE_ADMIN_ACCOUNT,
    GENESIS_KEY,
    HEDERA_NODE_ACCOUNT_ID_START,
    IGNORED_NODE_ACCOUNT_ID,
    OPERATOR_PUBLIC_KEY,
    SYSTEM_ACCOUNTS,
    TREASURY_ACCOUNT,
    TREASURY_ACCOUNT_ID,
)
from solo_manager.context import AccountUpdateResult, ResultStatus, ResultTracker
from solo_manager.errors import ResourceNotFoundError, SoloError
from solo_manager.kube import ClusterOps, PortForward
from solo_manager.ledger import (
    AccountUpdateTransaction,
    LedgerClient,
    LedgerClientFactory,
    SUCCESS,
    TransferTransaction,
    generate_ed25519_private_key,
    load_client_factory,
    public_key_of,
)
from solo_manager.services import ClusterStateReader, NetworkNodeServices
from solo_manager import templates

logger = logging.getLogger(__name__)

REASON_FAILED_TO_GET_KEYS = "failed to get keys for accountId"
REASON_SKIPPED = "skipped since it does not have a genesis key"
REASON_FAILED_TO_CREATE_SECRET = "failed to create k8s scrt key"
REASON_FAILED_TO_UPDATE_KEYS = "failed to update account keys"


@dataclass(frozen=True)
class AccountKeys:
    account_id: str
    private_key: str
    public_key: str


def account_id_from_number(number: int, shard: int = 0, realm: int = 0) -> str:
    return f"{shard}.{realm}.{number}"


def account_number(account_id: str) -> int:
    return int(account_id.rsplit(".", 1)[-1])


def batch_accounts(account_ranges: list[list[int]] = SYSTEM_ACCOUNTS, batch_size: int = 10) -> list[list[int]]:
    """Split account ranges into batches, treasury last and alone.

    Args:
        account_ranges: Inclusive ``[start, end]`` account number ranges.
        batch_size: Maximum accounts per batch.

    Returns:
        Batches of account numbers; every listed number appears exactly
        once and the treasury account forms the final single-item batch.
    """
    batches: list[list[int]] = []
    current: list[int] = []
    for start, end in account_ranges:
        for number in range(start, end + 1):
            if number == TREASURY_ACCOUNT:
                continue
            current.append(number)
            if len(current) == batch_size:
                batches.append(current)
                current = []
    if current:
        batches.append(current)
    batches.append([TREASURY_ACCOUNT])
    return batches


class AccountManager:
    """Owns the ledger client and port-forwards of one invocation.

    Args:
        settings: Client ping and port-forward settings.
        cluster: Cluster operations for secrets and port-forwards.
        state_reader: Source of the node service map.
        client_factory: Builds ledger clients, or None to load it from settings.
    """

    def __init__(self, settings: SoloSettings, cluster: ClusterOps, state_reader: ClusterStateReader,
                 client_factory: LedgerClientFactory | None = None) -> None:
        self._settings = settings
        self._cluster = cluster
        self._state_reader = state_reader
        self._client_factory = client_factory
        self._port_forwards: list[PortForward] = []
        self._lock = threading.Lock()
        self.node_client: LedgerClient | None = None

    # ------------------------------------------------------------------
    # Keys from secrets
    # ------------------------------------------------------------------

    def get_account_keys_from_secret(self, account_id: str, namespace: str) -> AccountKeys:
        """Keys stored in the account's secret, or the genesis key pair."""
        try:
            secrets = self._cluster.list_secrets(
                namespace, [templates.render_account_key_secret_label_selector(account_id)])
        except ResourceNotFoundError:
            secrets = []
        if secrets:
            data = secrets[0].get("data", {})
            return AccountKeys(
                account_id=account_id,
                private_key=base64.b64decode(data["privateKey"]).decode(),
                public_key=base64.b64decode(data["publicKey"]).decode(),
            )
        return AccountKeys(account_id=account_id, private_key=GENESIS_KEY, public_key=OPERATOR_PUBLIC_KEY)

    def get_treasury_account_keys(self, namespace: str) -> AccountKeys:
        return self.get_account_keys_from_secret(TREASURY_ACCOUNT_ID, namespace)

    def get_freeze_admin_keys(self, namespace: str) -> AccountKeys:
        return self.get_account_keys_from_secret(FREEZE_ADMIN_ACCOUNT, namespace)

    # ------------------------------------------------------------------
    # Node client
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the ledger client and stop every port-forward."""
        with self._lock:
            client, self.node_client = self.node_client, None
            forwards, self._port_forwards = self._port_forwards, []
        if client is not None:
            client.close()
        for forward in forwards:
            self._cluster.stop_port_forward(forward)
        logger.debug("node client and port forwards have been closed")

    def get_node_service_map(self, namespace: str) -> dict[str, NetworkNodeServices]:
        return self._state_reader.get_node_service_map(namespace)

    def load_node_client(self, namespace: str) -> LedgerClient:
        """Return a working node client, rebuilding it if a ping fails."""
        try:
            if self.node_client is None:
                return self.refresh_node_client(namespace)
            try:
                self.node_client.ping(HEDERA_NODE_ACCOUNT_ID_START)
            except Exception as err:
                logger.debug("Node client ping failed, refreshing: %s", err)
                return self.refresh_node_client(namespace)
            return self.node_client
        except SoloError as err:
            raise SoloError(f"failed to load node client: {err}") from err

    def refresh_node_client(self, namespace: str, skip_node_alias: str | None = None) -> LedgerClient:
        """Close the current client and build a new one over the live topology."""
        try:
            self.close()
            treasury = self.get_treasury_account_keys(namespace)
            service_map = self.get_node_service_map(namespace)
            self.node_client = self._build_node_client(namespace, service_map, treasury, skip_node_alias)
            return self.node_client
        except SoloError as err:
            raise SoloError(f"failed to refresh node client: {err}") from err

    def _build_node_client(self, namespace: str, service_map: dict[str, NetworkNodeServices],
                           operator: AccountKeys, skip_node_alias: str | None) -> LedgerClient:
        network = self._configure_node_access(namespace, service_map, skip_node_alias)
        if not network:
            raise SoloError("failed to setup node client: no reachable nodes")
        factory = self._client_factory or load_client_factory(self._settings.ledger_client_factory)
        client = factory(network)
        client.set_operator(operator.account_id, operator.private_key)
        if not self._settings.skip_node_ping:
            for node_account_id in network.values():
                self._ping_node(client, node_account_id)
        return client

    def _configure_node_access(self, namespace: str, service_map: dict[str, NetworkNodeServices],
                               skip_node_alias: str | None) -> dict[str, str]:
        """Map ``host:port`` to node account id, port-forwarding where needed."""
        network: dict[str, str] = {}
        local_port = self._settings.local_node_start_port
        try:
            for alias, node in service_map.items():
                if node.account_id in (None, IGNORED_NODE_ACCOUNT_ID) or alias == skip_node_alias:
                    continue
                port = node.haproxy_grpc_port
                if node.haproxy_load_balancer_ip:
                    network[f"{node.haproxy_load_balancer_ip}:{port}"] = node.account_id
                    continue
                forward = self._cluster.port_forward(namespace, node.haproxy_pod_name, local_port, port)
                with self._lock:
                    self._port_forwards.append(forward)
                network[f"127.0.0.1:{local_port}"] = node.account_id
                local_port += 1
        except SoloError as err:
            raise SoloError(f"failed to configure node access: {err}") from err
        return network

    def _ping_node(self, client: LedgerClient, node_account_id: str) -> None:
        retryer = Retrying(
            stop=stop_after_attempt(self._settings.node_client_ping_max_retries),
            wait=wait_fixed(self._settings.node_client_ping_retry_interval),
        )
        try:
            retryer(client.ping, node_account_id)
        except RetryError as err:
            raise SoloError(f"failed to ping node {node_account_id}: "
                            f"{err.last_attempt.exception()}") from err

    def require_client(self) -> LedgerClient:
        if self.node_client is None:
            raise SoloError("node client is not loaded")
        return self.node_client

    # ------------------------------------------------------------------
    # Account operations
    # ------------------------------------------------------------------

    def get_node_account_map(self, node_aliases: list[str],
                             service_map: dict[str, NetworkNodeServices] | None = None) -> dict[str, str]:
        """Alias -> node account id.

        The account id labelled on the node's service wins; nodes without one
        get ``0.0.3 + position``.
        """
        service_map = service_map or {}
        start = account_number(HEDERA_NODE_ACCOUNT_ID_START)
        account_map = {}
        for index, alias in enumerate(node_aliases):
            service = service_map.get(alias)
            if service is not None and service.account_id and service.account_id != IGNORED_NODE_ACCOUNT_ID:
                account_map[alias] = service.account_id
            else:
                account_map[alias] = account_id_from_number(start + index)
        return account_map

    def get_account_keys(self, account_id: str) -> list[str]:
        info = self.require_client().get_account_info(account_id)
        return list(info.keys)

    def transfer_amount(self, from_account: str, to_account: str, amount: int) -> bool:
        try:
            receipt = self.require_client().execute(TransferTransaction(from_account, to_account, amount))
        except Exception as err:
            raise SoloError(f"transfer amount failed with an error: {err}") from err
        return receipt.status == SUCCESS

    def send_account_key_update(self, account_id: str, new_private_key: str, old_private_key: str) -> bool:
        """Set a new key on an account, signed by both the old and new keys."""
        receipt = self.require_client().execute(
            AccountUpdateTransaction(account_id=account_id, key=public_key_of(new_private_key)),
            (old_private_key, new_private_key),
        )
        return receipt.status == SUCCESS

    def update_account_keys(self, namespace: str, account_id: str, genesis_key: str,
                            update_secrets: bool) -> AccountUpdateResult:
        """Rotate one account's genesis key and store the new pair in a secret."""
        try:
            keys = self.get_account_keys(account_id)
        except Exception as err:
            logger.debug("Failed to get keys for %s: %s", account_id, err)
            keys = []
        if not keys:
            return AccountUpdateResult(ResultStatus.REJECTED, account_id, REASON_FAILED_TO_GET_KEYS)
        if keys[0] != OPERATOR_PUBLIC_KEY:
            return AccountUpdateResult(ResultStatus.SKIPPED, account_id, REASON_SKIPPED)

        new_private_key = generate_ed25519_private_key()
        data = {
            "privateKey": base64.b64encode(new_private_key.encode()).decode(),
            "publicKey": base64.b64encode(public_key_of(new_private_key).encode()).decode(),
        }
        try:
            self._cluster.create_secret(
                templates.render_account_key_secret_name(account_id), namespace, "Opaque", data,
                templates.render_account_key_secret_labels(account_id), recreate=update_secrets)
        except SoloError as err:
            logger.error("Failed to create secret for %s: %s", account_id, err)
            return AccountUpdateResult(ResultStatus.REJECTED, account_id, REASON_FAILED_TO_CREATE_SECRET)

        try:
            updated = self.send_account_key_update(account_id, new_private_key, genesis_key)
        except Exception as err:
            logger.error("Failed to update keys for %s: %s", account_id, err)
            updated = False
        if not updated:
            return AccountUpdateResult(ResultStatus.REJECTED, account_id, REASON_FAILED_TO_UPDATE_KEYS)
        return AccountUpdateResult(ResultStatus.FULFILLED, account_id)

    def update_special_accounts_keys(self, namespace: str, account_numbers: list[int], update_secrets: bool,
                                     result_tracker: ResultTracker) -> ResultTracker:
        """Rotate the keys of a batch of accounts concurrently.

        Every account produces exactly one tracker entry. A batch in which
        every account was rejected raises.

        Raises:
            SoloError: If no account of a non-empty batch could be processed.
        """
        genesis_key = GENESIS_KEY
        account_ids = [account_id_from_number(n) for n in account_numbers]
        if not account_ids:
            return result_tracker

        with ThreadPoolExecutor(max_workers=len(account_ids)) as executor:
            results = list(executor.map(
                lambda account_id: self.update_account_keys(namespace, account_id, genesis_key, update_secrets),
                account_ids))

        rejected = 0
        for result in results:
            result_tracker.record(result)
            if result.status == ResultStatus.REJECTED:
                rejected += 1
                logger.debug("REJECT: %s: %s", result.reason, result.value)
        logger.debug("Current counts: [fulfilled: %d, skipped: %d, rejected: %d]",
                     result_tracker.fulfilled_count, result_tracker.skipped_count, result_tracker.rejected_count)
        if rejected == len(account_ids):
            raise SoloError(f"failed to update keys for every account in batch "
                            f"{account_ids[0]}..{account_ids[-1]}: {results[0].reason}")
        return result_tracker
