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

"""Log and saved-state downloads from network node pods.

Downloads run for every pod concurrently. A pod that fails is logged and
skipped so that the remaining pods still deliver their files.
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

from solo_manager import console
from solo_manager.constants import (
    HEDERA_HAPI_PATH,
    LABEL_NODE_NAME,
    LABEL_TYPE_NETWORK_NODE,
    RESOURCES_DIR,
    ROOT_CONTAINER,
    SUPPORT_ZIP_SCRIPT,
)
from solo_manager.errors import SoloError
from solo_manager.kube import ClusterOps

logger = logging.getLogger(__name__)

SCRIPT_SYNC_DELAY_SECONDS = 3.0


def render_log_time(moment: datetime | None = None) -> str:
    """ISO timestamp usable as a directory name (``:`` and ``.`` replaced)."""
    moment = moment or datetime.now(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace(":", "-").replace(".", "-")


class NetworkNodes:
    """Collects diagnostics from network node pods.

    Args:
        cluster: Cluster operations for pod listing, exec and copies.
        logs_dir: Local root receiving downloaded files.
        script_sync_delay: Seconds to wait after uploading the support script.
    """

    def __init__(self, cluster: ClusterOps, logs_dir: Path | str,
                 script_sync_delay: float = SCRIPT_SYNC_DELAY_SECONDS) -> None:
        self._cluster = cluster
        self._logs_dir = str(logs_dir)
        self._script_sync_delay = script_sync_delay

    def get_logs(self, namespace: str) -> list[str | None]:
        """Download a support zip from every network node pod.

        Returns:
            Local zip path per pod, None for pods that failed.
        """
        pods = self._cluster.list_pods(namespace, [LABEL_TYPE_NETWORK_NODE])
        target_dir = os.path.join(self._logs_dir, namespace, render_log_time())
        names = [pod["metadata"]["name"] for pod in pods]
        if not names:
            return []
        with ThreadPoolExecutor(max_workers=len(names)) as executor:
            return list(executor.map(lambda name: self._get_log(namespace, name, target_dir), names))

    def _get_log(self, namespace: str, pod: str, target_dir: str) -> str | None:
        logger.debug("get_node_logs(%s): begin...", pod)
        try:
            os.makedirs(target_dir, exist_ok=True)
            script = f"{HEDERA_HAPI_PATH}/{SUPPORT_ZIP_SCRIPT}"
            self._cluster.copy_to(namespace, pod, ROOT_CONTAINER, str(RESOURCES_DIR / SUPPORT_ZIP_SCRIPT),
                                  HEDERA_HAPI_PATH)
            time.sleep(self._script_sync_delay)
            self._cluster.exec_container(namespace, pod, ROOT_CONTAINER,
                                         f"sync {HEDERA_HAPI_PATH} && sudo chown hedera:hedera {script}")
            self._cluster.exec_container(namespace, pod, ROOT_CONTAINER, f"sudo chmod 0755 {script}")
            self._cluster.exec_container(namespace, pod, ROOT_CONTAINER, [script])
            path = self._cluster.copy_from(namespace, pod, ROOT_CONTAINER,
                                           f"{HEDERA_HAPI_PATH}/data/{pod}.zip", target_dir)
        except (OSError, SoloError) as err:
            logger.error("failed to download logs from pod %s: %s", pod, err)
            return None
        logger.debug("get_node_logs(%s): ...end", pod)
        return path

    def get_states_from_pod(self, namespace: str, node_alias: str) -> list[str | None]:
        """Download the saved state archive of one node.

        Returns:
            Local archive path per matching pod, None for pods that failed.
        """
        pods = self._cluster.list_pods(namespace, [f"{LABEL_NODE_NAME}={node_alias}", LABEL_TYPE_NETWORK_NODE])
        target_dir = os.path.join(self._logs_dir, namespace)
        return [self._get_state(namespace, pod["metadata"]["name"], target_dir) for pod in pods]

    def _get_state(self, namespace: str, pod: str, target_dir: str) -> str | None:
        logger.debug("get_node_state(%s): begin...", pod)
        try:
            os.makedirs(target_dir, exist_ok=True)
            archive = f"{HEDERA_HAPI_PATH}/{pod}-state.zip"
            self._cluster.exec_container(namespace, pod, ROOT_CONTAINER,
                                         f"tar -czf {archive} -C {HEDERA_HAPI_PATH}/data/saved .")
            path = self._cluster.copy_from(namespace, pod, ROOT_CONTAINER, archive, target_dir)
        except (OSError, SoloError) as err:
            logger.error("failed to download state from pod %s: %s", pod, err)
            console.print(f"[yellow]ℹ️  Failed to download state from pod {pod}: {err}[/yellow]")
            return None
        logger.debug("get_node_state(%s): ...end", pod)
        return path
