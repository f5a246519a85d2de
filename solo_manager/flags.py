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

"""Flag registry, per-operation flag sets, and flag resolution.

Every command flag is declared once as a :class:`Flag`. Operations group
flags into a :class:`FlagSet` of required and optional names; the
resolver walks that set, filling gaps from cached values, static
defaults and finally interactive prompts.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from solo_manager.config import ConfigManager
from solo_manager.constants import DEFAULT_CHAIN_ID, DEFAULT_RELEASE_TAG, HEDERA_APP_NAME
from solo_manager.errors import MissingArgumentError


@dataclass(frozen=True)
class Flag:
    """A single command flag.

    Attributes:
        name: Attribute name used in resolved configuration.
        option: Long command line option.
        help: Help text shown by the CLI.
        default: Static default, or None when the flag has none.
        prompt: Prompt text used when a required value is missing.
        sticky: Whether the value is cached for later invocations.
    """

    name: str
    option: str
    help: str
    default: Any = None
    prompt: str | None = None
    sticky: bool = False

    @property
    def is_bool(self) -> bool:
        return isinstance(self.default, bool)


@dataclass(frozen=True)
class FlagSet:
    """Required and optional flags of one operation."""

    required: tuple[Flag, ...]
    optional: tuple[Flag, ...] = ()

    @property
    def names(self) -> list[str]:
        return [f.name for f in (*self.required, *self.optional)]

    def extend(self, required: tuple[Flag, ...] = (), optional: tuple[Flag, ...] = ()) -> FlagSet:
        return FlagSet(required=self.required + required, optional=self.optional + optional)


# ============================================================================
# Flag registry
# ============================================================================

NAMESPACE = Flag("namespace", "--namespace", "Namespace of the network", prompt="Enter namespace name", sticky=True)
CACHE_DIR = Flag("cache_dir", "--cache-dir", "Local cache directory", prompt="Enter local cache directory path", sticky=True)
RELEASE_TAG = Flag("release_tag", "--release-tag", "Release tag of the platform build",
                   default=DEFAULT_RELEASE_TAG, prompt="Enter release tag", sticky=True)
APP = Flag("app", "--app", "Application jar to run on the nodes", default=HEDERA_APP_NAME)
APP_CONFIG = Flag("app_config", "--app-config", "JSON file with custom application properties")
CHAIN_ID = Flag("chain_id", "--ledger-id", "Ledger chain id", default=DEFAULT_CHAIN_ID, sticky=True)
CHART_DIRECTORY = Flag("chart_directory", "--chart-dir", "Local chart directory path", sticky=True)
SOLO_CHART_VERSION = Flag("solo_chart_version", "--solo-chart-version", "Solo testing chart version", sticky=True)
DEBUG_NODE_ALIAS = Flag("debug_node_alias", "--debug-node-alias", "Alias of the node started with a JVM debugger")
DEV_MODE = Flag("dev_mode", "--dev", "Enable developer mode", default=False)
ENDPOINT_TYPE = Flag("endpoint_type", "--endpoint-type", "Endpoint type (IP or FQDN)",
                     default="FQDN", prompt="Enter endpoint type (IP or FQDN)")
GOSSIP_ENDPOINTS = Flag("gossip_endpoints", "--gossip-endpoints", "Comma separated gossip endpoints of the node")
GRPC_ENDPOINTS = Flag("grpc_endpoints", "--grpc-endpoints", "Comma separated gRPC endpoints of the node")
GENERATE_GOSSIP_KEYS = Flag("generate_gossip_keys", "--gossip-keys", "Generate gossip keys for nodes",
                            default=False, prompt="Would you like to generate gossip keys?", sticky=True)
GENERATE_TLS_KEYS = Flag("generate_tls_keys", "--tls-keys", "Generate gRPC TLS keys for nodes",
                         default=False, prompt="Would you like to generate gRPC TLS keys?", sticky=True)
LOCAL_BUILD_PATH = Flag("local_build_path", "--local-build-path", "Path to a local build (path or alias=path,...)")
NODE_ALIAS = Flag("node_alias", "--node-alias", "Node alias", prompt="Enter the node alias")
NODE_ALIASES = Flag("node_aliases_unparsed", "--node-aliases", "Comma separated node aliases",
                    prompt="Enter list of node aliases (comma separated)", sticky=True)
ADMIN_KEY = Flag("admin_key", "--admin-key", "Admin key of the node (DER hex)")
ADMIN_PUBLIC_KEYS = Flag("admin_public_keys", "--admin-public-keys", "Comma separated admin public keys per node")
NEW_ADMIN_KEY = Flag("new_admin_key", "--new-admin-key", "New admin key of the node (DER hex)")
NEW_ACCOUNT_NUMBER = Flag("new_account_number", "--new-account-number", "New account number of the node")
TLS_PUBLIC_KEY = Flag("tls_public_key", "--tls-public-key", "Path to the new gRPC TLS certificate")
TLS_PRIVATE_KEY = Flag("tls_private_key", "--tls-private-key", "Path to the new gRPC TLS private key")
GOSSIP_PUBLIC_KEY = Flag("gossip_public_key", "--gossip-public-key", "Path to the new gossip certificate")
GOSSIP_PRIVATE_KEY = Flag("gossip_private_key", "--gossip-private-key", "Path to the new gossip private key")
PERSISTENT_VOLUME_CLAIMS = Flag("persistent_volume_claims", "--pvcs", "Enable persistent volume claims", default=False)
HAPROXY_IPS = Flag("haproxy_ips", "--haproxy-ips", "Static IP mapping for haproxy (node1=ip,...)")
ENVOY_IPS = Flag("envoy_ips", "--envoy-ips", "Static IP mapping for envoy proxies (node1=ip,...)")
INPUT_DIR = Flag("input_dir", "--input-dir", "Directory holding a saved context snapshot")
OUTPUT_DIR = Flag("output_dir", "--output-dir", "Directory receiving the context snapshot")
UPGRADE_ZIP_FILE = Flag("upgrade_zip_file", "--upgrade-zip-file", "Zip file used for the network upgrade")
STATE_FILE = Flag("state_file", "--state-file", "Saved state archive uploaded before start")
STAKE_AMOUNTS = Flag("stake_amounts", "--stake-amounts", "Comma separated stake amounts per node")
GRPC_TLS_CERTIFICATE_PATH = Flag("grpc_tls_certificate_path", "--grpc-tls-cert",
                                 "gRPC TLS certificates (alias=path,...)")
GRPC_WEB_TLS_CERTIFICATE_PATH = Flag("grpc_web_tls_certificate_path", "--grpc-web-tls-cert",
                                     "gRPC web TLS certificates (alias=path,...)")
GRPC_TLS_KEY_PATH = Flag("grpc_tls_key_path", "--grpc-tls-key", "gRPC TLS keys (alias=path,...)")
GRPC_WEB_TLS_KEY_PATH = Flag("grpc_web_tls_key_path", "--grpc-web-tls-key", "gRPC web TLS keys (alias=path,...)")
FORCE = Flag("force", "--force", "Force the action", default=False)
QUIET = Flag("quiet", "--quiet-mode", "Disable interactive prompts", default=False)

ALL_FLAGS = (
    NAMESPACE, CACHE_DIR, RELEASE_TAG, APP, APP_CONFIG, CHAIN_ID, CHART_DIRECTORY, SOLO_CHART_VERSION,
    DEBUG_NODE_ALIAS, DEV_MODE, ENDPOINT_TYPE, GOSSIP_ENDPOINTS, GRPC_ENDPOINTS, GENERATE_GOSSIP_KEYS,
    GENERATE_TLS_KEYS, LOCAL_BUILD_PATH, NODE_ALIAS, NODE_ALIASES, ADMIN_KEY, ADMIN_PUBLIC_KEYS,
    NEW_ADMIN_KEY, NEW_ACCOUNT_NUMBER, TLS_PUBLIC_KEY, TLS_PRIVATE_KEY, GOSSIP_PUBLIC_KEY,
    GOSSIP_PRIVATE_KEY, PERSISTENT_VOLUME_CLAIMS, HAPROXY_IPS, ENVOY_IPS, INPUT_DIR, OUTPUT_DIR,
    UPGRADE_ZIP_FILE, STATE_FILE, STAKE_AMOUNTS, GRPC_TLS_CERTIFICATE_PATH, GRPC_WEB_TLS_CERTIFICATE_PATH,
    GRPC_TLS_KEY_PATH, GRPC_WEB_TLS_KEY_PATH, FORCE, QUIET,
)
STICKY_FLAGS = frozenset(f.name for f in ALL_FLAGS if f.sticky)


# ============================================================================
# Per-operation flag sets
# ============================================================================

ADD_FLAGS = FlagSet(
    required=(CACHE_DIR, ENDPOINT_TYPE, GENERATE_GOSSIP_KEYS, GENERATE_TLS_KEYS, NAMESPACE, RELEASE_TAG),
    optional=(APP, CHAIN_ID, DEBUG_NODE_ALIAS, SOLO_CHART_VERSION, CHART_DIRECTORY, DEV_MODE, QUIET,
              LOCAL_BUILD_PATH, FORCE, PERSISTENT_VOLUME_CLAIMS, GOSSIP_ENDPOINTS, GRPC_ENDPOINTS,
              HAPROXY_IPS, ENVOY_IPS, ADMIN_KEY, GRPC_TLS_CERTIFICATE_PATH, GRPC_WEB_TLS_CERTIFICATE_PATH,
              GRPC_TLS_KEY_PATH, GRPC_WEB_TLS_KEY_PATH),
)
ADD_PREPARE_FLAGS = ADD_FLAGS.extend(optional=(OUTPUT_DIR,))
ADD_SUBMIT_FLAGS = ADD_FLAGS.extend(optional=(INPUT_DIR,))
ADD_EXECUTE_FLAGS = ADD_FLAGS.extend(optional=(INPUT_DIR,))

DELETE_FLAGS = FlagSet(
    required=(CACHE_DIR, NAMESPACE, NODE_ALIAS, RELEASE_TAG),
    optional=(APP, CHAIN_ID, CHART_DIRECTORY, DEV_MODE, DEBUG_NODE_ALIAS, ENDPOINT_TYPE,
              LOCAL_BUILD_PATH, QUIET, SOLO_CHART_VERSION),
)
DELETE_PREPARE_FLAGS = DELETE_FLAGS.extend(optional=(OUTPUT_DIR,))
DELETE_SUBMIT_FLAGS = DELETE_FLAGS.extend(optional=(INPUT_DIR,))
DELETE_EXECUTE_FLAGS = DELETE_FLAGS.extend(optional=(INPUT_DIR,))

UPDATE_FLAGS = FlagSet(
    required=(CACHE_DIR, NAMESPACE, NODE_ALIAS, RELEASE_TAG),
    optional=(APP, CHAIN_ID, CHART_DIRECTORY, DEV_MODE, DEBUG_NODE_ALIAS, ENDPOINT_TYPE, SOLO_CHART_VERSION,
              GOSSIP_ENDPOINTS, GRPC_ENDPOINTS, LOCAL_BUILD_PATH, NEW_ACCOUNT_NUMBER, NEW_ADMIN_KEY,
              TLS_PUBLIC_KEY, TLS_PRIVATE_KEY, GOSSIP_PUBLIC_KEY, GOSSIP_PRIVATE_KEY, QUIET),
)
UPDATE_PREPARE_FLAGS = UPDATE_FLAGS.extend(optional=(OUTPUT_DIR,))
UPDATE_SUBMIT_FLAGS = UPDATE_FLAGS.extend(optional=(INPUT_DIR,))
UPDATE_EXECUTE_FLAGS = UPDATE_FLAGS.extend(optional=(INPUT_DIR,))

UPGRADE_FLAGS = FlagSet(
    required=(CACHE_DIR, NAMESPACE, RELEASE_TAG),
    optional=(APP, CHAIN_ID, CHART_DIRECTORY, DEV_MODE, DEBUG_NODE_ALIAS, SOLO_CHART_VERSION,
              LOCAL_BUILD_PATH, UPGRADE_ZIP_FILE, QUIET, FORCE),
)
UPGRADE_PREPARE_FLAGS = UPGRADE_FLAGS.extend(optional=(OUTPUT_DIR,))
UPGRADE_SUBMIT_FLAGS = UPGRADE_FLAGS.extend(optional=(INPUT_DIR,))
UPGRADE_EXECUTE_FLAGS = UPGRADE_FLAGS.extend(optional=(INPUT_DIR,))

PREPARE_UPGRADE_FLAGS = FlagSet(
    required=(CACHE_DIR, NAMESPACE, RELEASE_TAG),
    optional=(DEV_MODE, QUIET, UPGRADE_ZIP_FILE),
)
FREEZE_UPGRADE_FLAGS = PREPARE_UPGRADE_FLAGS
DOWNLOAD_GENERATED_FILES_FLAGS = FlagSet(required=(CACHE_DIR, NAMESPACE, RELEASE_TAG), optional=(DEV_MODE, QUIET))

LOGS_FLAGS = FlagSet(required=(NAMESPACE, NODE_ALIASES), optional=(QUIET,))
STATES_FLAGS = LOGS_FLAGS
REFRESH_FLAGS = FlagSet(
    required=(CACHE_DIR, NAMESPACE, NODE_ALIASES, RELEASE_TAG),
    optional=(APP, DEV_MODE, LOCAL_BUILD_PATH, QUIET),
)
KEYS_FLAGS = FlagSet(
    required=(CACHE_DIR, GENERATE_GOSSIP_KEYS, GENERATE_TLS_KEYS),
    optional=(DEV_MODE, QUIET, NODE_ALIASES),
)
STOP_FLAGS = FlagSet(required=(NAMESPACE,), optional=(QUIET, NODE_ALIASES))
FREEZE_FLAGS = FlagSet(required=(NAMESPACE,), optional=(QUIET, FORCE))
RESTART_FLAGS = FREEZE_FLAGS
START_FLAGS = FlagSet(
    required=(NAMESPACE, RELEASE_TAG),
    optional=(APP, QUIET, NODE_ALIASES, DEBUG_NODE_ALIAS, STATE_FILE, STAKE_AMOUNTS),
)
SETUP_FLAGS = FlagSet(
    required=(CACHE_DIR, NAMESPACE, RELEASE_TAG),
    optional=(APP, APP_CONFIG, DEV_MODE, NODE_ALIASES, LOCAL_BUILD_PATH, ADMIN_PUBLIC_KEYS, QUIET),
)
ACCOUNT_INIT_FLAGS = FlagSet(required=(NAMESPACE,), optional=(DEV_MODE, QUIET, NODE_ALIASES))


# ============================================================================
# Resolution
# ============================================================================

Prompter = Callable[[Flag], Any]


def _is_unset(value: Any) -> bool:
    return value is None or value == ""


def resolve_flags(
    config_manager: ConfigManager,
    flag_set: FlagSet,
    prompter: Prompter | None = None,
    dynamic_defaults: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Resolve every flag of an operation into a plain value mapping.

    Required flags fall back to cached values, dynamic defaults, then the
    prompter (skipped in quiet mode), then static defaults. Optional flags
    are never prompted for.

    Args:
        config_manager: Holder of explicit and cached flag values.
        flag_set: Flags of the operation being run.
        prompter: Callable asking the operator for a value, or None.
        dynamic_defaults: Defaults only known at run time (e.g. cache dir).

    Returns:
        Mapping of flag name to resolved value.

    Raises:
        MissingArgumentError: If a required flag is still unset.
    """
    dynamic_defaults = dynamic_defaults or {}
    quiet = bool(config_manager.get_flag(QUIET.name, False))
    values: dict[str, Any] = {}

    for flag in flag_set.required:
        value = config_manager.get_flag(flag.name)
        if _is_unset(value):
            value = dynamic_defaults.get(flag.name)
        if _is_unset(value) and prompter is not None and not quiet:
            value = prompter(flag)
        if _is_unset(value):
            value = flag.default
        if _is_unset(value):
            raise MissingArgumentError(f"No value set for required flag: {flag.name}")
        config_manager.set_flag(flag.name, value)
        values[flag.name] = value

    for flag in flag_set.optional:
        value = config_manager.get_flag(flag.name)
        if _is_unset(value):
            value = dynamic_defaults.get(flag.name, flag.default)
        values[flag.name] = value

    return values
