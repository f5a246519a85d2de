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

"""Context snapshots: save and restore workflow state between phases.

A prepare phase writes the state a later submit or execute phase needs
to a JSON file; the later phase reads it back into a fresh
:class:`WorkflowContext`. Each workflow kind has a save/load parser
pair listing exactly the fields it carries.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from solo_manager.constants import (
    HEDERA_NODE_GRPC_PORT,
    HEDERA_NODE_INTERNAL_GOSSIP_PORT,
    NODE_ADD_CONTEXT_FILE,
    NODE_DELETE_CONTEXT_FILE,
    NODE_UPDATE_CONTEXT_FILE,
    NODE_UPGRADE_CONTEXT_FILE,
)
from solo_manager.context import NewNode, WorkflowContext
from solo_manager.errors import MissingArgumentError, SoloError
from solo_manager.helpers import prepare_endpoints

logger = logging.getLogger(__name__)


class ContextSnapshotStore:
    """Reads and atomically writes snapshot files."""

    def save(self, directory: str | None, filename: str, data: dict[str, Any]) -> str:
        """Write ``data`` to ``<directory>/<filename>`` atomically.

        Raises:
            MissingArgumentError: If no directory was given.
        """
        if not directory:
            raise MissingArgumentError(
                "Path to export context data not specified. Please set a value for --output-dir")
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, filename)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{filename}.", dir=directory)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as err:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise SoloError(f"failed to save context snapshot {path}: {err}") from err
        logger.debug("Saved context snapshot %s", path)
        return path

    def load(self, directory: str | None, filename: str) -> dict[str, Any]:
        """Read a snapshot written by an earlier phase.

        Raises:
            MissingArgumentError: If no directory was given.
            SoloError: If the file is missing or not valid JSON.
        """
        if not directory:
            raise MissingArgumentError(
                "Path to import context data not specified. Please set a value for --input-dir")
        path = os.path.join(directory, filename)
        if not os.path.isfile(path):
            raise SoloError(f"context snapshot {path} does not exist, run the prepare phase first")
        try:
            with open(path) as f:
                return json.load(f)
        except json.JSONDecodeError as err:
            raise SoloError(f"context snapshot {path} is corrupted: {err}") from err


@dataclass(frozen=True)
class SnapshotParser:
    """Save/load pair for one workflow kind."""

    filename: str
    save: Callable[[WorkflowContext], dict[str, Any]]
    load: Callable[[WorkflowContext, dict[str, Any]], None]


def _hex(value: bytes | None) -> str | None:
    return value.hex() if value is not None else None


def _unhex(value: str | None) -> bytes | None:
    return bytes.fromhex(value) if value else None


def _replace_config(ctx: WorkflowContext, **changes: Any) -> None:
    present = {k: v for k, v in changes.items() if v is not None}
    if present and ctx.config is not None:
        ctx.config = dataclasses.replace(ctx.config, **present)


# ============================================================================
# Add
# ============================================================================

def add_save_context_parser(ctx: WorkflowContext) -> dict[str, Any]:
    return {
        "admin_key": ctx.admin_key,
        "existing_node_aliases": list(ctx.existing_node_aliases),
        "all_node_aliases": list(ctx.all_node_aliases),
        "new_node": dataclasses.asdict(ctx.new_node) if ctx.new_node else None,
        "node_alias": ctx.node_alias,
        "signing_cert_der": _hex(ctx.signing_cert_der),
        "tls_cert_hash": _hex(ctx.tls_cert_hash),
        "gossip_endpoints": [str(e) for e in ctx.gossip_endpoints],
        "grpc_service_endpoints": [str(e) for e in ctx.grpc_service_endpoints],
        "upgrade_zip_hash": ctx.upgrade_zip_hash,
    }


def add_load_context_parser(ctx: WorkflowContext, data: dict[str, Any]) -> None:
    """Restore add state; endpoints are re-parsed with the current endpoint type."""
    new_node = data.get("new_node")
    if not new_node:
        raise SoloError("context snapshot does not describe a new node")
    ctx.new_node = NewNode(**new_node)
    ctx.node_alias = data.get("node_alias") or ctx.new_node.name
    ctx.existing_node_aliases = list(data.get("existing_node_aliases", []))
    ctx.all_node_aliases = list(data.get("all_node_aliases")
                                or [*ctx.existing_node_aliases, ctx.node_alias])
    ctx.admin_key = data.get("admin_key")
    ctx.signing_cert_der = _unhex(data.get("signing_cert_der"))
    ctx.tls_cert_hash = _unhex(data.get("tls_cert_hash"))
    endpoint_type = ctx.config.endpoint_type if ctx.config else "FQDN"
    ctx.gossip_endpoints = prepare_endpoints(endpoint_type, data.get("gossip_endpoints", []),
                                             HEDERA_NODE_INTERNAL_GOSSIP_PORT)
    ctx.grpc_service_endpoints = prepare_endpoints(endpoint_type, data.get("grpc_service_endpoints", []),
                                                   HEDERA_NODE_GRPC_PORT)
    ctx.upgrade_zip_hash = data.get("upgrade_zip_hash")
    _replace_config(ctx, node_alias=ctx.node_alias)


# ============================================================================
# Delete
# ============================================================================

def delete_save_context_parser(ctx: WorkflowContext) -> dict[str, Any]:
    return {
        "admin_key": ctx.admin_key,
        "existing_node_aliases": list(ctx.existing_node_aliases),
        "all_node_aliases": list(ctx.all_node_aliases),
        "node_alias": ctx.node_alias,
        "upgrade_zip_hash": ctx.upgrade_zip_hash,
    }


def delete_load_context_parser(ctx: WorkflowContext, data: dict[str, Any]) -> None:
    ctx.admin_key = data.get("admin_key")
    ctx.existing_node_aliases = list(data.get("existing_node_aliases", []))
    ctx.all_node_aliases = list(data.get("all_node_aliases") or ctx.existing_node_aliases)
    ctx.node_alias = data.get("node_alias")
    ctx.upgrade_zip_hash = data.get("upgrade_zip_hash")
    ctx.pod_refs = {}
    _replace_config(ctx, node_alias=ctx.node_alias)


# ============================================================================
# Update
# ============================================================================

_UPDATE_CONFIG_FIELDS = ("new_account_number", "new_admin_key", "tls_public_key", "tls_private_key",
                         "gossip_public_key", "gossip_private_key")


def update_save_context_parser(ctx: WorkflowContext) -> dict[str, Any]:
    data = {
        "admin_key": ctx.admin_key,
        "freeze_admin_private_key": ctx.freeze_admin_private_key,
        "treasury_key": ctx.treasury_key,
        "existing_node_aliases": list(ctx.existing_node_aliases),
        "all_node_aliases": list(ctx.all_node_aliases),
        "node_alias": ctx.node_alias,
        "upgrade_zip_hash": ctx.upgrade_zip_hash,
    }
    for name in _UPDATE_CONFIG_FIELDS:
        data[name] = getattr(ctx.config, name)
    return data


def update_load_context_parser(ctx: WorkflowContext, data: dict[str, Any]) -> None:
    ctx.admin_key = data.get("admin_key")
    ctx.freeze_admin_private_key = data.get("freeze_admin_private_key")
    ctx.treasury_key = data.get("treasury_key")
    ctx.existing_node_aliases = list(data.get("existing_node_aliases", []))
    ctx.all_node_aliases = list(data.get("all_node_aliases") or ctx.existing_node_aliases)
    ctx.node_alias = data.get("node_alias")
    ctx.upgrade_zip_hash = data.get("upgrade_zip_hash")
    _replace_config(ctx, node_alias=ctx.node_alias, **{name: data.get(name) for name in _UPDATE_CONFIG_FIELDS})


# ============================================================================
# Upgrade
# ============================================================================

def upgrade_save_context_parser(ctx: WorkflowContext) -> dict[str, Any]:
    return {
        "admin_key": ctx.admin_key,
        "freeze_admin_private_key": ctx.freeze_admin_private_key,
        "existing_node_aliases": list(ctx.existing_node_aliases),
        "all_node_aliases": list(ctx.all_node_aliases),
        "upgrade_zip_file": ctx.upgrade_zip_file,
        "upgrade_zip_hash": ctx.upgrade_zip_hash,
    }


def upgrade_load_context_parser(ctx: WorkflowContext, data: dict[str, Any]) -> None:
    ctx.admin_key = data.get("admin_key")
    ctx.freeze_admin_private_key = data.get("freeze_admin_private_key")
    ctx.existing_node_aliases = list(data.get("existing_node_aliases", []))
    ctx.all_node_aliases = list(data.get("all_node_aliases") or ctx.existing_node_aliases)
    ctx.upgrade_zip_file = data.get("upgrade_zip_file")
    ctx.upgrade_zip_hash = data.get("upgrade_zip_hash")


ADD_SNAPSHOT = SnapshotParser(NODE_ADD_CONTEXT_FILE, add_save_context_parser, add_load_context_parser)
DELETE_SNAPSHOT = SnapshotParser(NODE_DELETE_CONTEXT_FILE, delete_save_context_parser, delete_load_context_parser)
UPDATE_SNAPSHOT = SnapshotParser(NODE_UPDATE_CONTEXT_FILE, update_save_context_parser, update_load_context_parser)
UPGRADE_SNAPSHOT = SnapshotParser(NODE_UPGRADE_CONTEXT_FILE, upgrade_save_context_parser,
                                  upgrade_load_context_parser)
