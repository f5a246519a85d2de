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

"""Small parsing, endpoint, and file backup helpers."""

from __future__ import annotations

import ipaddress
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from solo_manager.constants import (
    BACKUP_GOSSIP_DIR_PREFIX,
    BACKUP_TLS_DIR_PREFIX,
    EndpointType,
    JVM_DEBUG_PORT,
)
from solo_manager.errors import IllegalArgumentError, MissingArgumentError
from solo_manager import templates

logger = logging.getLogger(__name__)


# ============================================================================
# Flag parsing
# ============================================================================

def split_flag_input(value: str | None, delimiter: str = ",") -> list[str]:
    """Split a delimited flag value, dropping blanks and surrounding spaces."""
    if not value:
        return []
    return [item.strip() for item in value.split(delimiter) if item.strip()]


def parse_node_aliases(value: str | None) -> list[str]:
    return split_flag_input(value)


def parse_stake_amounts(value: str | None) -> list[int]:
    """Parse ``--stake-amounts`` into integers.

    Raises:
        IllegalArgumentError: If an amount is not a positive integer.
    """
    amounts = []
    for item in split_flag_input(value):
        try:
            amount = int(item)
        except ValueError as err:
            raise IllegalArgumentError(f"invalid stake amount: {item}", value) from err
        if amount <= 0:
            raise IllegalArgumentError(f"stake amount must be positive: {item}", value)
        amounts.append(amount)
    return amounts


def parse_alias_paths(value: str | None, default_aliases: list[str]) -> dict[str, str]:
    """Parse a ``path`` or ``alias=path,...`` flag into alias -> path.

    A bare path applies to every alias in ``default_aliases``.
    """
    entries = split_flag_input(value)
    if len(entries) == 1 and "=" not in entries[0]:
        return {alias: entries[0] for alias in default_aliases}
    mapping = {}
    for entry in entries:
        alias, sep, path = entry.partition("=")
        if not sep or not alias or not path:
            raise IllegalArgumentError(f"invalid alias=path entry: {entry}", value)
        mapping[alias] = path
    return mapping


# ============================================================================
# Service endpoints
# ============================================================================

@dataclass(frozen=True)
class ServiceEndpoint:
    """A network endpoint advertised for a node.

    Exactly one of ``domain_name`` and ``ip_address_v4`` is set.
    """

    port: int
    domain_name: str | None = None
    ip_address_v4: str | None = None

    def __post_init__(self) -> None:
        if bool(self.domain_name) == bool(self.ip_address_v4):
            raise IllegalArgumentError(
                "service endpoint requires exactly one of domain name and IPv4 address",
                (self.domain_name, self.ip_address_v4),
            )

    @property
    def host(self) -> str:
        return self.domain_name or self.ip_address_v4

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def prepare_endpoints(endpoint_type: str, endpoints: list[str], default_port: int) -> list[ServiceEndpoint]:
    """Turn ``host[:port]`` strings into service endpoints.

    Args:
        endpoint_type: ``IP`` or ``FQDN``.
        endpoints: Endpoint strings, port optional.
        default_port: Port used when an entry has none.

    Returns:
        Service endpoints in input order.

    Raises:
        IllegalArgumentError: If the type is unknown or an IP is malformed.
    """
    try:
        kind = EndpointType(endpoint_type)
    except ValueError as err:
        raise IllegalArgumentError(f"unknown endpoint type: {endpoint_type}", endpoint_type) from err

    result = []
    for endpoint in endpoints:
        host, _, port = endpoint.partition(":")
        try:
            port_number = int(port) if port else default_port
        except ValueError as err:
            raise IllegalArgumentError(f"invalid port in endpoint: {endpoint}", endpoint) from err
        if kind == EndpointType.IP:
            try:
                ipaddress.IPv4Address(host)
            except ValueError as err:
                raise IllegalArgumentError(f"invalid IPv4 address: {host}", endpoint) from err
            result.append(ServiceEndpoint(port=port_number, ip_address_v4=host))
        else:
            result.append(ServiceEndpoint(port=port_number, domain_name=host))
    return result


# ============================================================================
# Key backups
# ============================================================================

def create_backup_directory(dest_dir: str, dir_prefix: str, cur_date: datetime) -> str:
    """Create ``<dest_dir>/<dir_prefix>/<YYYYMMDD_HHMMSS>`` and return it."""
    backup_dir = os.path.join(dest_dir, dir_prefix, cur_date.strftime("%Y%m%d_%H%M%S"))
    os.makedirs(backup_dir, exist_ok=True)
    return backup_dir


def make_backup(file_map: dict[str, str], remove_old: bool = True) -> None:
    """Copy (or move) each existing source file to its backup destination."""
    for src, dest in file_map.items():
        if not os.path.exists(src):
            continue
        shutil.copyfile(src, dest)
        if remove_old:
            os.remove(src)
        logger.debug("Backed up %s to %s", src, dest)


def _backup_files(node_aliases: list[str], keys_dir: str, cur_date: datetime, dir_prefix: str,
                  renderers) -> str:
    if not isinstance(node_aliases, list):
        raise IllegalArgumentError("node aliases must be a list", node_aliases)
    if not keys_dir:
        raise MissingArgumentError("keys directory is required")
    backup_dir = create_backup_directory(keys_dir, dir_prefix, cur_date)
    file_map = {}
    for alias in node_aliases:
        for render in renderers:
            name = render(alias)
            file_map[os.path.join(keys_dir, name)] = os.path.join(backup_dir, name)
    make_backup(file_map, remove_old=True)
    return backup_dir


def backup_old_tls_keys(node_aliases: list[str], keys_dir: str, cur_date: datetime,
                        dir_prefix: str = BACKUP_TLS_DIR_PREFIX) -> str:
    """Move existing TLS key files of ``node_aliases`` into a timestamped backup."""
    return _backup_files(node_aliases, keys_dir, cur_date, dir_prefix,
                         (templates.render_tls_key_file, templates.render_tls_cert_file))


def backup_old_pem_keys(node_aliases: list[str], keys_dir: str, cur_date: datetime,
                        dir_prefix: str = BACKUP_GOSSIP_DIR_PREFIX) -> str:
    """Move existing gossip PEM files of ``node_aliases`` into a timestamped backup."""
    return _backup_files(node_aliases, keys_dir, cur_date, dir_prefix,
                         (templates.render_gossip_pem_private_key_file,
                          templates.render_gossip_pem_public_key_file))


def rename_and_copy_file(src: str, new_name: str, dest_dir: str) -> str:
    """Copy ``src`` into ``dest_dir`` under ``new_name``; returns the new path."""
    os.makedirs(dest_dir, exist_ok=True)
    dest = os.path.join(dest_dir, new_name)
    shutil.copyfile(src, dest)
    return dest


# ============================================================================
# Misc
# ============================================================================

def add_debug_options(values_args: list[str], debug_node_alias: str | None, index: int = 0) -> list[str]:
    """Append JVM remote debugging options for the debug node to helm args."""
    if debug_node_alias:
        values_args.extend([
            "--set",
            f"hedera.nodes[{index}].root.extraEnv[0].name=JAVA_OPTS",
            "--set",
            f"hedera.nodes[{index}].root.extraEnv[0].value="
            f"-agentlib:jdwp=transport=dt_socket\\,server=y\\,suspend=y\\,address=*:{JVM_DEBUG_PORT}",
        ])
    return values_args


def ensure_dir(path: str | Path) -> str:
    os.makedirs(path, exist_ok=True)
    return str(path)
