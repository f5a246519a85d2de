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

"""Naming rules for pods, services, secrets, key files and directories."""

from __future__ import annotations

import os
import re

from cryptography import x509
from cryptography.x509.oid import NameOID

from solo_manager.constants import (
    GrpcProxyTlsType,
    LABEL_ACCOUNT_ID,
    LABEL_NODE_NAME,
    SIGNING_KEY_PREFIX,
)
from solo_manager.errors import IllegalArgumentError, MissingArgumentError, SoloError

_TRAILING_DIGITS = re.compile(r"\d+$")


def render_network_pod_name(node_alias: str) -> str:
    return f"network-{node_alias}-0"


def render_network_svc_name(node_alias: str) -> str:
    return f"network-{node_alias}-svc"


def render_network_headless_svc_name(node_alias: str) -> str:
    return f"network-{node_alias}"


def render_haproxy_name(node_alias: str) -> str:
    return f"haproxy-{node_alias}"


def render_envoy_proxy_name(node_alias: str) -> str:
    return f"envoy-proxy-{node_alias}"


def render_full_pod_fqdn(node_alias: str, namespace: str) -> str:
    """Cluster DNS name of a node pod behind its headless service."""
    return (f"{render_network_pod_name(node_alias)}."
            f"{render_network_headless_svc_name(node_alias)}.{namespace}.svc.cluster.local")


def render_full_svc_fqdn(node_alias: str, namespace: str) -> str:
    """Cluster DNS name of a node service."""
    return f"{render_network_svc_name(node_alias)}.{namespace}.svc.cluster.local"


def render_gossip_pem_private_key_file(node_alias: str) -> str:
    return f"{SIGNING_KEY_PREFIX}-private-{node_alias}.pem"


def render_gossip_pem_public_key_file(node_alias: str) -> str:
    return f"{SIGNING_KEY_PREFIX}-public-{node_alias}.pem"


def render_tls_key_file(node_alias: str) -> str:
    return f"hedera-{node_alias}.key"


def render_tls_cert_file(node_alias: str) -> str:
    return f"hedera-{node_alias}.crt"


def render_node_friendly_name(prefix: str, node_alias: str, suffix: str = "") -> str:
    """Friendly name embedded in certificate subjects (e.g. ``s-node1``)."""
    parts = [prefix, node_alias]
    if suffix:
        parts.append(suffix)
    return "-".join(parts)


def render_distinguished_name(
    node_alias: str,
    state: str = "TX",
    locality: str = "Richardson",
    org: str = "Hedera",
    org_unit: str = "Hedera",
    country: str = "US",
) -> x509.Name:
    """Full subject used for operator requested TLS certificates."""
    return x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, node_alias),
        x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, state),
        x509.NameAttribute(NameOID.LOCALITY_NAME, locality),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, org),
        x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, org_unit),
        x509.NameAttribute(NameOID.COUNTRY_NAME, country),
    ])


def render_account_key_secret_name(account_id: str) -> str:
    return f"account-key-{account_id}"


def render_account_key_secret_label_selector(account_id: str) -> str:
    return f"{LABEL_ACCOUNT_ID}={account_id}"


def render_account_key_secret_labels(account_id: str) -> dict[str, str]:
    return {LABEL_ACCOUNT_ID: account_id}


def render_gossip_key_secret_name(node_alias: str) -> str:
    return f"network-{node_alias}-keys-secrets"


def render_gossip_key_secret_labels(node_alias: str) -> dict[str, str]:
    return {LABEL_NODE_NAME: node_alias}


def render_grpc_tls_secret_name(node_alias: str, tls_type: GrpcProxyTlsType) -> str:
    if tls_type == GrpcProxyTlsType.GRPC:
        return f"haproxy-proxy-secret-{node_alias}"
    return f"envoy-proxy-secret-{node_alias}"


def render_grpc_tls_secret_labels(node_alias: str, tls_type: GrpcProxyTlsType) -> dict[str, str]:
    if tls_type == GrpcProxyTlsType.GRPC:
        return {"haproxy-proxy-secret": node_alias}
    return {"envoy-proxy-secret": node_alias}


def render_staging_dir(cache_dir: str, release_tag: str) -> str:
    """Staging directory for a release, grouped by its ``vMAJOR.MINOR`` prefix.

    Args:
        cache_dir: Local cache directory.
        release_tag: Platform release tag such as ``v0.58.10``.

    Returns:
        ``<cache_dir>/<vMAJOR.MINOR>/staging/<release_tag>``.

    Raises:
        MissingArgumentError: If cache_dir or release_tag is empty.
        IllegalArgumentError: If release_tag is not a semantic version tag.
    """
    if not cache_dir:
        raise MissingArgumentError("cache directory is required")
    if not release_tag:
        raise MissingArgumentError("release tag is required")
    match = re.match(r"^(v?\d+\.\d+)\.\d+", release_tag)
    if not match:
        raise IllegalArgumentError(f"invalid release tag: {release_tag}", release_tag)
    return os.path.join(cache_dir, match.group(1), "staging", release_tag)


def node_id_from_node_alias(node_alias: str) -> int:
    """Ledger node id encoded in an alias, one less than its trailing number.

    Raises:
        SoloError: If the alias carries no trailing number.
    """
    match = _TRAILING_DIGITS.search(node_alias or "")
    if not match or match.start() == 0:
        raise SoloError(f"Can't get node id from node {node_alias}")
    return int(match.group()) - 1


def next_node_alias(node_alias: str) -> str:
    """Alias with its trailing number incremented (``node2`` -> ``node3``)."""
    match = _TRAILING_DIGITS.search(node_alias)
    if not match:
        return node_alias
    return f"{node_alias[:match.start()]}{int(match.group()) + 1}"


def parse_node_alias_to_ip_mapping(unparsed: str | None) -> dict[str, str]:
    """Parse ``node1=10.0.0.1,node2=10.0.0.2`` into a mapping.

    Raises:
        IllegalArgumentError: If an entry is not of the form ``alias=ip``.
    """
    mapping: dict[str, str] = {}
    if not unparsed:
        return mapping
    for entry in unparsed.split(","):
        alias, sep, ip = entry.strip().partition("=")
        if not sep or not alias or not ip:
            raise IllegalArgumentError(f"invalid node alias to IP mapping: {entry}", unparsed)
        mapping[alias] = ip
    return mapping


def render_node_admin_key_name(node_alias: str) -> str:
    return f"{node_alias}-admin"
