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

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from enum import Enum, IntEnum
from pathlib import Path
from typing import Any

import yaml

# -- Resolved paths --
PACKAGE_DIR = Path(__file__).resolve().parent
RESOURCES_DIR = PACKAGE_DIR / "resources"


def load_dependencies() -> dict:
    """Load chart and platform versions from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = PACKAGE_DIR / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Local directories --
SOLO_HOME_DIR = Path.home() / ".solo"
SOLO_CACHE_DIR_NAME = "cache"
SOLO_LOGS_DIR_NAME = "logs"
SOLO_CONFIG_FILE = "solo.yaml"

# -- Charts --
SOLO_CHARTS_REPO_NAME = dep_value("solo_charts", "repo_name", default="solo-charts")
SOLO_CHARTS_URL = dep_value("solo_charts", "repo_url", default="oci://ghcr.io/hashgraph/solo-charts")
SOLO_DEPLOYMENT_CHART = dep_value("solo_charts", "deployment_chart", default="solo-deployment")
SOLO_DEPLOYMENT_RELEASE = dep_value("solo_charts", "release_name", default="solo-deployment")
SOLO_CHART_VERSION = str(dep_value("solo_charts", "version", default="0.49.0"))
PROFILE_VALUES_FILE = "solo-node-add.yaml"

# -- Platform --
DEFAULT_RELEASE_TAG = dep_value("platform", "release_tag", default="v0.58.10")
PLATFORM_BUILDS_URL = dep_value("platform", "builds_url", default="https://builds.hedera.com/node/software")
DEFAULT_NODE_ALIASES = dep_value("network", "default_node_aliases", default="node1,node2,node3")
DEFAULT_CHAIN_ID = str(dep_value("network", "chain_id", default="298"))

HEDERA_HGCAPP_DIR = "/opt/hgcapp"
HEDERA_SERVICES_PATH = f"{HEDERA_HGCAPP_DIR}/services-hedera"
HEDERA_HAPI_PATH = f"{HEDERA_SERVICES_PATH}/HapiApp2.0"
HEDERA_DATA_APPS_DIR = "data/apps"
HEDERA_DATA_LIB_DIR = "data/lib"
HEDERA_USER_HOME_DIR = "/home/hedera"
HEDERA_APP_NAME = "HederaNode.jar"
ROOT_CONTAINER = "root-container"
EXTRACT_PLATFORM_SCRIPT = "extract-platform.sh"
SUPPORT_ZIP_SCRIPT = "support-zip.sh"
LOCAL_BUILD_IGNORED_DIRS = ("data/keys", "data/config")

# -- Accounts --
GENESIS_KEY = "302e020100300506032b65700422042091132178e72057a1d7528025956fe39b0b847f200ab59b2fdd367017f3087137"
GENESIS_PUBLIC_KEY = "302a300506032b65700321000aa8e21064c61eab86e2a9c164565b4e7a9a4146106e0a6cd03a8c395a110e92"
OPERATOR_ID = "0.0.2"
OPERATOR_KEY = GENESIS_KEY
OPERATOR_PUBLIC_KEY = GENESIS_PUBLIC_KEY
TREASURY_ACCOUNT = 2
TREASURY_ACCOUNT_ID = f"0.0.{TREASURY_ACCOUNT}"
FREEZE_ADMIN_ACCOUNT = "0.0.58"
SYSTEM_ACCOUNTS = [[3, 100], [200, 349], [400, 750], [900, 1000]]
SHORTER_SYSTEM_ACCOUNTS = [[3, 60]]
ACCOUNT_UPDATE_BATCH_SIZE = 10
HEDERA_NODE_ACCOUNT_ID_START = "0.0.3"
HEDERA_NODE_DEFAULT_STAKE_AMOUNT = 500
IGNORED_NODE_ACCOUNT_ID = "0.0.0"
UPGRADE_FILE_ID = "0.0.150"
UPGRADE_FILE_CHUNK_SIZE = 1024 * 5
FREEZE_START_DELAY_SECONDS = 5

# -- Ports and endpoints --
HEDERA_NODE_INTERNAL_GOSSIP_PORT = 50111
HEDERA_NODE_EXTERNAL_GOSSIP_PORT = 50111
HEDERA_NODE_GRPC_PORT = 50211
HEDERA_NODE_METRICS_URL = "http://localhost:9999/metrics"
LOCAL_NODE_START_PORT = 30212
JVM_DEBUG_PORT = 5005
DEFAULT_NETWORK_NODE_NAME = "node1"

# -- Key material --
SIGNING_KEY_PREFIX = "s"
CERTIFICATE_VALIDITY_YEARS = 100
SIGNING_KEY_SIZE = 3072
TLS_KEY_SIZE = 4096
TLS_SECRET_NAME = "network-node-hapi-app-secrets"
BACKUP_TLS_DIR_PREFIX = "unused-tls"
BACKUP_GOSSIP_DIR_PREFIX = "unused-gossip-pem"

# -- Labels --
LABEL_NODE_NAME = "solo.hedera.com/node-name"
LABEL_NODE_ID = "solo.hedera.com/node-id"
LABEL_ACCOUNT_ID = "solo.hedera.com/account-id"
LABEL_TYPE = "solo.hedera.com/type"
LABEL_TYPE_NETWORK_NODE = f"{LABEL_TYPE}=network-node"
LABEL_TYPE_HAPROXY = f"{LABEL_TYPE}=haproxy"
SVC_TYPE_ENVOY = "envoy-proxy-svc"
SVC_TYPE_HAPROXY = "haproxy-svc"
SVC_TYPE_NETWORK_NODE = "network-node-svc"

# -- Pod lifecycle --
POD_PHASE_RUNNING = "Running"
POD_CONDITION_READY = "Ready"
POD_CONDITION_STATUS_TRUE = "True"
PODS_RUNNING_MAX_ATTEMPTS = 900
PODS_RUNNING_DELAY_SECONDS = 1.0
PODS_READY_MAX_ATTEMPTS = 300
PODS_READY_DELAY_SECONDS = 2.0
NETWORK_NODE_ACTIVE_MAX_ATTEMPTS = 300
NETWORK_NODE_ACTIVE_DELAY_SECONDS = 1.0
NETWORK_PROXY_MAX_ATTEMPTS = 300
NETWORK_PROXY_DELAY_SECONDS = 2.0
NODE_CLIENT_PING_MAX_RETRIES = 5
NODE_CLIENT_PING_RETRY_INTERVAL_SECONDS = 10.0
POD_RESTART_SLEEP_SECONDS = 20.0
STAKE_WEIGHT_DELAY_SECONDS = 60.0
NODE_STATUS_SETTLE_SECONDS = 2.0
DEBUG_NODE_WAIT_SECONDS = 3600.0

# -- Lease --
LEASE_DURATION_SECONDS = 20
LEASE_ACQUIRE_ATTEMPTS = 10
LEASE_RENEW_FRACTION = 0.5

# -- Context snapshots --
NODE_ADD_CONTEXT_FILE = "node-add.json"
NODE_DELETE_CONTEXT_FILE = "node-delete.json"
NODE_UPDATE_CONTEXT_FILE = "node-update.json"
NODE_UPGRADE_CONTEXT_FILE = "node-upgrade.json"


class NodeStatusCode(IntEnum):
    """Values exported by the ``platform_PlatformStatus`` metric."""

    NO_VALUE = 0
    STARTING_UP = 1
    ACTIVE = 2
    BEHIND = 4
    FREEZING = 5
    FREEZE_COMPLETE = 6
    REPLAYING_EVENTS = 7
    OBSERVING = 8
    CHECKING = 9
    RECONNECT_COMPLETE = 10
    CATASTROPHIC_FAILURE = 11


class EndpointType(str, Enum):
    """How node endpoints are advertised to the ledger."""

    IP = "IP"
    FQDN = "FQDN"


class NodeSubcommandType(str, Enum):
    """Which membership change a chart or stake update is applied for."""

    ADD = "add"
    DELETE = "delete"
    UPDATE = "update"


class GrpcProxyTlsType(str, Enum):
    """Proxy kinds that accept operator supplied TLS certificates."""

    GRPC = "grpc"
    GRPC_WEB = "grpc-web"
