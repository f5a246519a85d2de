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

"""Phase specific configuration builders for node operations.

Each builder receives the resolved flag values of one operation, checks
the target namespace, derives directories and chart paths, and loads the
ledger credentials its phase needs into the workflow context.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Callable
from typing import Any

from solo_manager.charts import prepare_chart_path
from solo_manager.config import NodeConfig
from solo_manager.constants import DEFAULT_NODE_ALIASES, GENESIS_KEY, SOLO_CHART_VERSION, SOLO_DEPLOYMENT_CHART
from solo_manager.context import CommandContext, WorkflowContext
from solo_manager.errors import SoloError
from solo_manager.helpers import parse_node_aliases
from solo_manager.templates import render_staging_dir

logger = logging.getLogger(__name__)

ConfigBuilder = Callable[[CommandContext, WorkflowContext, dict[str, Any]], NodeConfig]

_NODE_CONFIG_FIELDS = {f.name for f in dataclasses.fields(NodeConfig)}


def to_node_config(values: dict[str, Any], **derived: Any) -> NodeConfig:
    """Build a NodeConfig from resolved flags, ignoring names it does not carry.

    ``input_dir`` and ``output_dir`` default to the cache directory.
    """
    fields = {k: v for k, v in values.items() if k in _NODE_CONFIG_FIELDS and v is not None}
    cache_dir = fields.get("cache_dir")
    if cache_dir:
        fields.setdefault("input_dir", cache_dir)
        fields.setdefault("output_dir", cache_dir)
    fields.setdefault("node_aliases", tuple(parse_node_aliases(values.get("node_aliases_unparsed"))))
    fields.update(derived)
    return NodeConfig(**fields)


def check_namespace(cmd: CommandContext, namespace: str) -> None:
    if not cmd.cluster.has_namespace(namespace):
        raise SoloError(f"namespace {namespace} does not exist")


def initialize_setup(cmd: CommandContext, config: NodeConfig) -> NodeConfig:
    """Derive key and staging directories and create them locally.

    Raises:
        SoloError: If the namespace does not exist.
    """
    check_namespace(cmd, config.namespace)

    keys_dir = os.path.join(config.cache_dir, "keys")
    staging_dir = render_staging_dir(config.cache_dir, config.release_tag)
    staging_keys_dir = os.path.join(staging_dir, "keys")

    os.makedirs(staging_keys_dir, exist_ok=True)
    os.makedirs(keys_dir, exist_ok=True)
    return dataclasses.replace(config, keys_dir=keys_dir, staging_dir=staging_dir,
                               staging_keys_dir=staging_keys_dir)


def _with_chart_path(config: NodeConfig) -> NodeConfig:
    chart_path = prepare_chart_path(config.chart_directory, SOLO_DEPLOYMENT_CHART)
    return dataclasses.replace(config, chart_path=chart_path,
                               solo_chart_version=config.solo_chart_version or SOLO_CHART_VERSION)


def _load_ledger_credentials(cmd: CommandContext, ctx: WorkflowContext, namespace: str) -> None:
    cmd.accounts.load_node_client(namespace)
    ctx.treasury_key = cmd.accounts.get_treasury_account_keys(namespace).private_key
    ctx.freeze_admin_private_key = cmd.accounts.get_freeze_admin_keys(namespace).private_key


# ============================================================================
# Builders
# ============================================================================

def prepare_upgrade_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    config = initialize_setup(cmd, to_node_config(values))
    cmd.accounts.load_node_client(config.namespace)
    ctx.freeze_admin_private_key = cmd.accounts.get_freeze_admin_keys(config.namespace).private_key
    return config


def download_generated_files_config(cmd: CommandContext, ctx: WorkflowContext,
                                    values: dict[str, Any]) -> NodeConfig:
    ctx.existing_node_aliases = []
    return initialize_setup(cmd, to_node_config(values))


def add_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    """Config for the add prepare and submit phases, with a loaded ledger client."""
    return _add_config(cmd, ctx, values, load_client=True)


def add_execute_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    """Standalone execute phase: existing nodes are frozen, so no client is built."""
    return _add_config(cmd, ctx, values, load_client=False)


def _add_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any],
                load_client: bool) -> NodeConfig:
    ctx.admin_key = values.get("admin_key") or GENESIS_KEY
    config = _with_chart_path(initialize_setup(cmd, to_node_config(values)))
    if load_client:
        _load_ledger_credentials(cmd, ctx, config.namespace)
    return config


def delete_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    config = _with_chart_path(initialize_setup(cmd, to_node_config(values)))
    ctx.node_alias = config.node_alias
    _load_ledger_credentials(cmd, ctx, config.namespace)
    return config


def delete_execute_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    config = _with_chart_path(initialize_setup(cmd, to_node_config(values)))
    ctx.node_alias = config.node_alias
    return config


update_config = delete_config
update_execute_config = delete_execute_config


def upgrade_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    config = _with_chart_path(initialize_setup(cmd, to_node_config(values)))
    _load_ledger_credentials(cmd, ctx, config.namespace)
    return config


def upgrade_execute_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    return _with_chart_path(initialize_setup(cmd, to_node_config(values)))


def logs_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    return to_node_config(values)


states_config = logs_config


def refresh_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    return initialize_setup(cmd, to_node_config(values))


setup_config = refresh_config


def keys_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    """Local only: no namespace is required and none is checked."""
    config = to_node_config(values)
    keys_dir = os.path.join(config.cache_dir, "keys")
    os.makedirs(keys_dir, exist_ok=True)
    node_aliases = config.node_aliases or tuple(parse_node_aliases(DEFAULT_NODE_ALIASES))
    return dataclasses.replace(config, keys_dir=keys_dir, node_aliases=node_aliases)


def namespace_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    """Config for stop, start, freeze, restart and account init."""
    config = to_node_config(values)
    check_namespace(cmd, config.namespace)
    return config


stop_config = namespace_config
start_config = namespace_config
restart_config = namespace_config


def freeze_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    config = namespace_config(cmd, ctx, values)
    _load_ledger_credentials(cmd, ctx, config.namespace)
    return config


def account_init_config(cmd: CommandContext, ctx: WorkflowContext, values: dict[str, Any]) -> NodeConfig:
    config = namespace_config(cmd, ctx, values)
    cmd.accounts.load_node_client(config.namespace)
    return config
