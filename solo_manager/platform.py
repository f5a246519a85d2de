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

"""Platform software installation and key secrets for node pods."""

from __future__ import annotations

import base64
import logging
import os
import shutil
import tempfile

from tenacity import RetryError, Retrying, stop_after_attempt, wait_fixed

from solo_manager.constants import (
    EXTRACT_PLATFORM_SCRIPT,
    HEDERA_HAPI_PATH,
    HEDERA_USER_HOME_DIR,
    LOCAL_BUILD_IGNORED_DIRS,
    RESOURCES_DIR,
    ROOT_CONTAINER,
    TLS_SECRET_NAME,
)
from solo_manager.errors import MissingArgumentError, SoloError
from solo_manager.helpers import parse_alias_paths
from solo_manager.kube import ClusterOps
from solo_manager.pipeline import Fork, Leaf
from solo_manager import templates

logger = logging.getLogger(__name__)

LOCAL_BUILD_COPY_ATTEMPTS = 3


def _encode_files(paths: list[str]) -> dict[str, str]:
    data = {}
    for path in paths:
        with open(path, "rb") as f:
            data[os.path.basename(path)] = base64.b64encode(f.read()).decode()
    return data


class PlatformInstaller:
    """Installs platform builds into node pods and stages their key secrets.

    Args:
        cluster: Cluster operations for copies, execs and secrets.
    """

    def __init__(self, cluster: ClusterOps) -> None:
        self._cluster = cluster

    # ------------------------------------------------------------------
    # Platform software
    # ------------------------------------------------------------------

    def copy_files(self, namespace: str, pod: str, src_files: list[str], dest_dir: str,
                   container: str = ROOT_CONTAINER) -> list[str]:
        """Copy local files into a container directory, creating it if needed."""
        copied = []
        try:
            for src in src_files:
                if not os.path.exists(src):
                    raise SoloError(f"file does not exist: {src}")
                if not self._cluster.has_dir(namespace, pod, container, dest_dir):
                    self._cluster.exec_container(namespace, pod, container, ["mkdir", "-p", dest_dir])
                logger.debug("Copying file into %s: %s -> %s", pod, src, dest_dir)
                copied.append(self._cluster.copy_to(namespace, pod, container, src, dest_dir))
        except SoloError as err:
            raise SoloError(f"failed to copy files to pod '{pod}': {err}") from err
        return copied

    def fetch_platform(self, namespace: str, pod: str, release_tag: str) -> None:
        """Download and unpack the platform build inside the pod.

        Raises:
            SoloError: If the extract script cannot be copied or fails.
        """
        if not pod:
            raise MissingArgumentError("pod name is required")
        if not release_tag:
            raise MissingArgumentError("release tag is required")
        try:
            script = str(RESOURCES_DIR / EXTRACT_PLATFORM_SCRIPT)
            self.copy_files(namespace, pod, [script], HEDERA_USER_HOME_DIR)
            remote_script = f"{HEDERA_USER_HOME_DIR}/{EXTRACT_PLATFORM_SCRIPT}"
            self._cluster.exec_container(namespace, pod, ROOT_CONTAINER, f"chmod +x {remote_script}")
            self._cluster.exec_container(namespace, pod, ROOT_CONTAINER, [remote_script, release_tag])
        except SoloError as err:
            message = f"failed to extract platform code in this pod '{pod}': {err}"
            logger.error(message)
            raise SoloError(message) from err

    def copy_local_build(self, namespace: str, pod: str, build_path: str, app_config: str | None = None) -> None:
        """Copy a local build into the pod, leaving mounted config and keys alone."""
        ignored = {os.path.normpath(d) for d in LOCAL_BUILD_IGNORED_DIRS}

        def _ignore(directory: str, names: list[str]) -> list[str]:
            rel = os.path.relpath(directory, build_path)
            return [n for n in names if os.path.normpath(os.path.join(rel, n)) in ignored]

        with tempfile.TemporaryDirectory(prefix="solo-build-") as tmp:
            filtered = os.path.join(tmp, "build")
            shutil.copytree(build_path, filtered, ignore=_ignore)
            for entry in sorted(os.listdir(filtered)):
                self._cluster.copy_to(namespace, pod, ROOT_CONTAINER, os.path.join(filtered, entry),
                                      HEDERA_HAPI_PATH)

        for json_file in (app_config or "").split(","):
            if json_file and os.path.isfile(json_file):
                self._cluster.copy_to(namespace, pod, ROOT_CONTAINER, json_file, HEDERA_HAPI_PATH)

    def task_upload_local_build(self, namespace: str, node_aliases: list[str], pod_refs: dict[str, str],
                                local_build_path: str, app_config: str | None = None) -> Fork:
        """Concurrent copy of a local build to each node.

        ``local_build_path`` is either one path for every node or
        ``alias=path`` pairs.

        Raises:
            SoloError: If a node's build path does not exist.
        """
        paths = parse_alias_paths(local_build_path, node_aliases)
        children = []
        for alias in node_aliases:
            build_path = paths.get(alias)
            if not build_path or not os.path.exists(build_path):
                raise SoloError(f"local build path does not exist: {build_path}")
            children.append(Leaf(
                f"Copy local build to Node: {alias} from {build_path}",
                lambda ctx, task, alias=alias, build_path=build_path: self._copy_local_build_with_retry(
                    namespace, pod_refs[alias], build_path, app_config),
            ))
        return Fork("Copy local build", children, concurrent=True)

    def _copy_local_build_with_retry(self, namespace: str, pod: str, build_path: str,
                                     app_config: str | None) -> None:
        retryer = Retrying(stop=stop_after_attempt(LOCAL_BUILD_COPY_ATTEMPTS), wait=wait_fixed(1))
        try:
            retryer(self.copy_local_build, namespace, pod, build_path, app_config)
        except RetryError as err:
            raise SoloError(f"Error in copying local build to node: "
                            f"{err.last_attempt.exception()}") from err

    def task_fetch_platform(self, namespace: str, node_aliases: list[str], pod_refs: dict[str, str],
                            release_tag: str) -> Fork:
        """Concurrent platform download on every node; downloads run in the pods."""
        children = [
            Leaf(f"Update node: {alias} [ platformVersion = {release_tag} ]",
                 lambda ctx, task, alias=alias: self.fetch_platform(namespace, pod_refs[alias], release_tag))
            for alias in node_aliases
        ]
        return Fork("Fetch platform software", children, concurrent=True)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def set_path_permission(self, namespace: str, pod: str, dest_path: str, mode: str = "0755",
                            recursive: bool = True, container: str = ROOT_CONTAINER) -> None:
        if not pod:
            raise MissingArgumentError("pod name is required")
        if not dest_path:
            raise MissingArgumentError("destination path is required")
        flag = "-R " if recursive else ""
        self._cluster.exec_container(namespace, pod, container,
                                     f"chown {flag}hedera:hedera {dest_path} 2>/dev/null || true")
        self._cluster.exec_container(namespace, pod, container,
                                     f"chmod {flag}{mode} {dest_path} 2>/dev/null || true")

    def set_platform_dir_permissions(self, namespace: str, pod: str) -> None:
        try:
            self.set_path_permission(namespace, pod, HEDERA_HAPI_PATH)
        except SoloError as err:
            raise SoloError(f"failed to set permission in '{pod}': {err}") from err

    def task_setup(self, namespace: str, pod: str) -> Fork:
        return Fork(f"Setup {pod}", [
            Leaf("Set file permissions", lambda ctx, task: self.set_platform_dir_permissions(namespace, pod)),
        ])

    # ------------------------------------------------------------------
    # Key secrets
    # ------------------------------------------------------------------

    def copy_gossip_keys(self, namespace: str, node_alias: str, staging_dir: str, node_aliases: list[str]) -> None:
        """Store the node's private and every node's public signing key in its secret."""
        if not node_alias:
            raise MissingArgumentError("node alias is required")
        if not staging_dir:
            raise MissingArgumentError("staging directory is required")
        if not node_aliases:
            raise MissingArgumentError("node aliases cannot be empty")

        name = templates.render_gossip_key_secret_name(node_alias)
        keys_dir = os.path.join(staging_dir, "keys")
        src_files = [os.path.join(keys_dir, templates.render_gossip_pem_private_key_file(node_alias))]
        src_files.extend(os.path.join(keys_dir, templates.render_gossip_pem_public_key_file(alias))
                         for alias in node_aliases)
        try:
            data = _encode_files(src_files)
            if not self._cluster.create_secret(name, namespace, "Opaque", data,
                                               templates.render_gossip_key_secret_labels(node_alias),
                                               recreate=True):
                raise SoloError(f"failed to create secret for gossip keys for node '{node_alias}'")
        except (OSError, SoloError) as err:
            message = f"failed to copy gossip keys to secret '{name}': {err}"
            logger.error(message)
            raise SoloError(message) from err

    def copy_tls_keys(self, namespace: str, node_aliases: list[str], staging_dir: str) -> None:
        """Store the gRPC TLS key pairs of every node in the shared secret."""
        if not node_aliases:
            raise MissingArgumentError("node aliases cannot be empty")
        if not staging_dir:
            raise MissingArgumentError("staging directory is required")

        keys_dir = os.path.join(staging_dir, "keys")
        src_files = []
        for alias in node_aliases:
            src_files.append(os.path.join(keys_dir, templates.render_tls_key_file(alias)))
            src_files.append(os.path.join(keys_dir, templates.render_tls_cert_file(alias)))
        try:
            data = _encode_files(src_files)
            if not self._cluster.create_secret(TLS_SECRET_NAME, namespace, "Opaque", data, recreate=True):
                raise SoloError("failed to create secret for TLS keys")
        except (OSError, SoloError) as err:
            logger.error("failed to copy TLS keys to secret: %s", err)
            raise SoloError(f"failed to copy TLS keys to secret: {err}") from err

    def copy_node_keys(self, namespace: str, staging_dir: str, node_aliases: list[str]) -> Fork:
        """Concurrent secret copies: the shared TLS secret plus one gossip secret per node."""
        children: list = [
            Leaf("Copy TLS keys", lambda ctx, task: self.copy_tls_keys(namespace, node_aliases, staging_dir)),
        ]
        for alias in node_aliases:
            children.append(Fork(f"Node: {alias}", [
                Leaf("Copy Gossip keys",
                     lambda ctx, task, alias=alias: self.copy_gossip_keys(namespace, alias, staging_dir,
                                                                          node_aliases)),
            ]))
        return Fork("Copy node keys to secrets", children, concurrent=True)

