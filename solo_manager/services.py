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

"""Cluster state reader: node service map and pod readiness polling."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from solo_manager.constants import (
    LABEL_ACCOUNT_ID,
    LABEL_NODE_ID,
    LABEL_NODE_NAME,
    LABEL_TYPE,
    LABEL_TYPE_NETWORK_NODE,
    POD_CONDITION_READY,
    POD_CONDITION_STATUS_TRUE,
    POD_PHASE_RUNNING,
    SVC_TYPE_ENVOY,
    SVC_TYPE_HAPROXY,
    SVC_TYPE_NETWORK_NODE,
)
from solo_manager.errors import MissingArgumentError, SoloError
from solo_manager.kube import ClusterOps
from solo_manager import templates

logger = logging.getLogger(__name__)


@dataclass
class NetworkNodeServices:
    """Services, pods and account of one consensus node.

    Attributes:
        node_alias: Node alias (e.g. ``node1``).
        namespace: Namespace the node lives in.
        node_id: Ledger node id.
        account_id: Node account id, ``0.0.0`` once removed from the ledger.
        node_pod_name: Name of the network node pod.
        haproxy_pod_name: Name of the haproxy pod fronting the node.
        haproxy_app_selector: ``app`` selector of the haproxy service.
    """

    node_alias: str
    namespace: str
    node_id: int | None = None
    account_id: str | None = None
    node_pod_name: str | None = None
    node_service_name: str | None = None
    node_service_cluster_ip: str | None = None
    node_service_load_balancer_ip: str | None = None
    node_service_gossip_port: int | None = None
    node_service_grpc_port: int | None = None
    node_service_grpcs_port: int | None = None
    haproxy_name: str | None = None
    haproxy_app_selector: str | None = None
    haproxy_pod_name: str | None = None
    haproxy_cluster_ip: str | None = None
    haproxy_load_balancer_ip: str | None = None
    haproxy_grpc_port: int | None = None
    haproxy_grpcs_port: int | None = None
    envoy_proxy_name: str | None = None
    envoy_proxy_cluster_ip: str | None = None
    envoy_proxy_load_balancer_ip: str | None = None
    envoy_proxy_grpc_web_port: int | None = None


def _port(service: dict, name: str) -> int | None:
    for port in service.get("spec", {}).get("ports", []) or []:
        if port.get("name") == name:
            return port.get("port")
    return None


def _load_balancer_ip(service: dict) -> str | None:
    ingress = (service.get("status", {}).get("loadBalancer", {}) or {}).get("ingress") or []
    return ingress[0].get("ip") if ingress else None


class ClusterStateReader:
    """Reads node topology from labelled cluster resources.

    Args:
        cluster: Cluster operations used for every query.
    """

    def __init__(self, cluster: ClusterOps) -> None:
        self._cluster = cluster

    def get_node_service_map(self, namespace: str) -> dict[str, NetworkNodeServices]:
        """Build alias -> services from node services and their backing pods.

        Raises:
            SoloError: If the cluster cannot be queried.
        """
        try:
            return self._build_service_map(namespace)
        except SoloError as err:
            raise SoloError(f"failed to get node services: {err}") from err

    def _build_service_map(self, namespace: str) -> dict[str, NetworkNodeServices]:
        service_map: dict[str, NetworkNodeServices] = {}

        for service in self._cluster.list_services(namespace, [LABEL_NODE_NAME]):
            metadata = service.get("metadata", {})
            labels = metadata.get("labels", {}) or {}
            alias = labels[LABEL_NODE_NAME]
            node = service_map.setdefault(alias, NetworkNodeServices(node_alias=alias, namespace=namespace))
            svc_type = labels.get(LABEL_TYPE)
            spec = service.get("spec", {})

            if svc_type == SVC_TYPE_ENVOY:
                node.envoy_proxy_name = metadata.get("name")
                node.envoy_proxy_cluster_ip = spec.get("clusterIP")
                node.envoy_proxy_load_balancer_ip = _load_balancer_ip(service)
                node.envoy_proxy_grpc_web_port = _port(service, "hedera-grpc-web")
            elif svc_type == SVC_TYPE_HAPROXY:
                node.haproxy_app_selector = (spec.get("selector") or {}).get("app")
                node.haproxy_name = metadata.get("name")
                node.haproxy_cluster_ip = spec.get("clusterIP")
                node.haproxy_load_balancer_ip = _load_balancer_ip(service)
                node.haproxy_grpc_port = _port(service, "non-tls-grpc-client-port")
                node.haproxy_grpcs_port = _port(service, "tls-grpc-client-port")
            elif svc_type == SVC_TYPE_NETWORK_NODE:
                node_id = labels.get(LABEL_NODE_ID)
                if node_id is not None and str(node_id).isdigit():
                    node.node_id = int(node_id)
                else:
                    node.node_id = templates.node_id_from_node_alias(alias)
                    logger.warning("Derived node id %d from alias %s, %s label missing",
                                   node.node_id, alias, LABEL_NODE_ID)
                node.account_id = labels.get(LABEL_ACCOUNT_ID)
                node.node_service_name = metadata.get("name")
                node.node_service_cluster_ip = spec.get("clusterIP")
                node.node_service_load_balancer_ip = _load_balancer_ip(service)
                node.node_service_gossip_port = _port(service, "gossip")
                node.node_service_grpc_port = _port(service, "grpc-non-tls")
                node.node_service_grpcs_port = _port(service, "grpc-tls")

        for node in service_map.values():
            if node.haproxy_app_selector:
                pods = self._cluster.list_pods(namespace, [f"app={node.haproxy_app_selector}"])
                if pods:
                    node.haproxy_pod_name = pods[0]["metadata"]["name"]

        for pod in self._cluster.list_pods(namespace, [LABEL_TYPE_NETWORK_NODE]):
            metadata = pod.get("metadata", {})
            alias = (metadata.get("labels") or {}).get(LABEL_NODE_NAME)
            if alias in service_map:
                service_map[alias].node_pod_name = metadata.get("name")

        return service_map

    # ------------------------------------------------------------------
    # Pod polling
    # ------------------------------------------------------------------

    def wait_for_pods(
        self,
        namespace: str,
        phases: list[str],
        labels: list[str],
        pod_count: int = 1,
        max_attempts: int = 10,
        delay: float = 0.5,
        predicate: Callable[[dict], bool] | None = None,
    ) -> list[dict]:
        """Poll until ``pod_count`` pods match the labels, phase and predicate.

        Args:
            namespace: Namespace to search.
            phases: Accepted pod phases (e.g. ``["Running"]``).
            labels: Label selectors every pod must match.
            pod_count: Exact number of pods expected.
            max_attempts: Polls made before giving up.
            delay: Seconds between polls.
            predicate: Extra per-pod check, or None.

        Returns:
            The matching pods.

        Raises:
            SoloError: If the pods are not found within the attempt budget.
        """
        def _poll() -> list[dict] | None:
            pods = self._cluster.list_pods(namespace, labels)
            if len(pods) != pod_count:
                return None
            for pod in pods:
                if pod.get("status", {}).get("phase") not in phases:
                    return None
                if predicate is not None and not predicate(pod):
                    return None
            return pods

        retryer = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(delay),
            retry=retry_if_result(lambda pods: pods is None) | retry_if_exception_type(SoloError),
        )
        try:
            return retryer(_poll)
        except RetryError as err:
            raise SoloError(
                f"Expected number of pod(s) {pod_count} not found for labels: {','.join(labels)}, "
                f"phases: {','.join(phases)} [attempts = {max_attempts}/{max_attempts}]"
            ) from err

    def wait_for_pod_conditions(
        self,
        namespace: str,
        conditions: dict[str, str],
        labels: list[str],
        pod_count: int = 1,
        max_attempts: int = 10,
        delay: float = 0.5,
    ) -> list[dict]:
        """Wait for running pods whose status conditions match ``conditions``.

        Raises:
            MissingArgumentError: If ``conditions`` is empty.
        """
        if not conditions:
            raise MissingArgumentError("pod conditions are required")

        def _matches(pod: dict) -> bool:
            actual = {c.get("type"): c.get("status") for c in pod.get("status", {}).get("conditions", []) or []}
            return all(actual.get(kind) == status for kind, status in conditions.items())

        return self.wait_for_pods(namespace, [POD_PHASE_RUNNING], labels, pod_count,
                                  max_attempts, delay, _matches)

    def wait_for_pod_ready(self, namespace: str, labels: list[str], pod_count: int = 1,
                           max_attempts: int = 10, delay: float = 0.5) -> list[dict]:
        try:
            return self.wait_for_pod_conditions(
                namespace, {POD_CONDITION_READY: POD_CONDITION_STATUS_TRUE}, labels,
                pod_count, max_attempts, delay)
        except SoloError as err:
            raise SoloError(f"Pod not ready [maxAttempts = {max_attempts}]") from err

    def wait_for_running_pods(self, namespace: str, labels: list[str], pod_count: int = 1,
                              max_attempts: int = 10, delay: float = 0.5) -> list[dict]:
        return self.wait_for_pods(namespace, [POD_PHASE_RUNNING], labels, pod_count, max_attempts, delay)
