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

"""Cluster operations backed by kubectl."""

from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone

import sh

from solo_manager.errors import ResourceNotFoundError, SoloError

logger = logging.getLogger(__name__)

LEASE_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        SoloError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise SoloError(f"Required command '{cmd}' not found. Please install it first.") from err


def run_kubectl(args: list[str], timeout: int = 30, input: str | None = None) -> tuple[bool, str, str]:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because JSON parsing and NotFound
    detection need stdout and stderr kept apart.

    Args:
        args: kubectl arguments (e.g. ``["get", "pods", "-n", "default"]``).
        timeout: Maximum seconds to wait for the command to complete.
        input: Text fed to stdin (manifests passed with ``-f -``).

    Returns:
        Tuple of (success, stdout, stderr).
    """
    try:
        result = subprocess.run(
            ["kubectl", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)


def format_lease_time(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(LEASE_TIME_FORMAT)


def parse_lease_time(value: str | None) -> datetime | None:
    if not value:
        return None
    for fmt in (LEASE_TIME_FORMAT, "%Y-%m-%dT%H:%M:%SZ"):
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise SoloError(f"invalid lease timestamp: {value}")


@dataclass
class PortForward:
    """A running ``kubectl port-forward`` process."""

    namespace: str
    pod: str
    local_port: int
    pod_port: int
    process: subprocess.Popen


class ClusterOps:
    """Pod, service, secret, PVC and lease operations for one cluster.

    Args:
        timeout: Default kubectl timeout in seconds.
        copy_timeout: Timeout for file copies in and out of pods.
    """

    def __init__(self, timeout: int = 60, copy_timeout: int = 600) -> None:
        self._timeout = timeout
        self._copy_timeout = copy_timeout

    # ------------------------------------------------------------------
    # Low level
    # ------------------------------------------------------------------

    def _kubectl(self, args: list[str], timeout: int | None = None, input: str | None = None) -> str:
        ok, out, err = run_kubectl(args, timeout=timeout or self._timeout, input=input)
        if not ok:
            if "NotFound" in err:
                raise ResourceNotFoundError(err.strip(), args[2] if len(args) > 2 else None)
            raise SoloError(f"kubectl {' '.join(args[:2])} failed: {err.strip()}")
        return out

    def _list(self, kind: str, namespace: str, labels: list[str] | None = None) -> list[dict]:
        args = ["get", kind, "-n", namespace, "-o", "json"]
        if labels:
            args.extend(["-l", ",".join(labels)])
        return json.loads(self._kubectl(args)).get("items", [])

    # ------------------------------------------------------------------
    # Namespaces and listing
    # ------------------------------------------------------------------

    def has_namespace(self, namespace: str) -> bool:
        ok, _, _ = run_kubectl(["get", "namespace", namespace], timeout=self._timeout)
        return ok

    def list_pods(self, namespace: str, labels: list[str] | None = None) -> list[dict]:
        return self._list("pods", namespace, labels)

    def list_services(self, namespace: str, labels: list[str] | None = None) -> list[dict]:
        return self._list("services", namespace, labels)

    def list_secrets(self, namespace: str, labels: list[str] | None = None) -> list[dict]:
        return self._list("secrets", namespace, labels)

    def list_pvcs(self, namespace: str, labels: list[str] | None = None) -> list[dict]:
        return self._list("persistentvolumeclaims", namespace, labels)

    def read_secret(self, namespace: str, name: str) -> dict | None:
        """Return the secret object, or None when it does not exist."""
        try:
            return json.loads(self._kubectl(["get", "secret", name, "-n", namespace, "-o", "json"]))
        except ResourceNotFoundError:
            return None

    def delete_pod(self, namespace: str, name: str) -> None:
        try:
            sh.kubectl("delete", "pod", name, "-n", namespace, "--grace-period=1", "--wait=false")
        except sh.ErrorReturnCode as err:
            raise SoloError(f"failed to delete pod {name}: {err.stderr.decode().strip()}") from err

    def create_secret(
        self,
        name: str,
        namespace: str,
        secret_type: str,
        data: dict[str, str],
        labels: dict[str, str] | None = None,
        recreate: bool = False,
    ) -> bool:
        """Create an Opaque-style secret from base64 encoded data.

        Args:
            name: Secret name.
            namespace: Target namespace.
            secret_type: Kubernetes secret type, usually ``Opaque``.
            data: Key to base64 encoded value.
            labels: Labels used to look the secret up later.
            recreate: Delete an existing secret of the same name first.

        Returns:
            True once the secret exists.
        """
        manifest = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": name, "namespace": namespace, "labels": labels or {}},
            "type": secret_type,
            "data": data,
        }
        if recreate:
            self._kubectl(["delete", "secret", name, "-n", namespace, "--ignore-not-found"])
        self._kubectl(["create", "-f", "-"], input=json.dumps(manifest))
        logger.debug("Created secret %s/%s", namespace, name)
        return True

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def exec_container(self, namespace: str, pod: str, container: str,
                       command: str | list[str], timeout: int | None = None) -> str:
        """Run a command in a container and return its stdout.

        A string command runs through ``bash -c``.
        """
        argv = ["bash", "-c", command] if isinstance(command, str) else list(command)
        return self._kubectl(["exec", pod, "-n", namespace, "-c", container, "--", *argv],
                             timeout=timeout or self._copy_timeout)

    def has_file(self, namespace: str, pod: str, container: str, path: str) -> bool:
        ok, _, _ = run_kubectl(["exec", pod, "-n", namespace, "-c", container, "--", "test", "-f", path],
                               timeout=self._timeout)
        return ok

    def has_dir(self, namespace: str, pod: str, container: str, path: str) -> bool:
        ok, _, _ = run_kubectl(["exec", pod, "-n", namespace, "-c", container, "--", "test", "-d", path],
                               timeout=self._timeout)
        return ok

    def list_dir(self, namespace: str, pod: str, container: str, path: str) -> list[tuple[str, bool]]:
        """Entries of a container directory as ``(name, is_dir)`` pairs."""
        out = self.exec_container(namespace, pod, container,
                                  ["find", path, "-mindepth", "1", "-maxdepth", "1", "-printf", "%y %f\\n"],
                                  timeout=self._timeout)
        entries = []
        for line in out.splitlines():
            kind, _, name = line.partition(" ")
            if name:
                entries.append((name, kind == "d"))
        return entries

    def copy_to(self, namespace: str, pod: str, container: str, src: str, dest_dir: str) -> str:
        """Copy a local file or directory into ``dest_dir`` of a container."""
        if not os.path.exists(src):
            raise SoloError(f"local path does not exist: {src}")
        dest = f"{dest_dir.rstrip('/')}/{os.path.basename(src.rstrip('/'))}"
        try:
            sh.kubectl("cp", src, f"{namespace}/{pod}:{dest}", "-c", container, _timeout=self._copy_timeout)
        except sh.ErrorReturnCode as err:
            raise SoloError(f"failed to copy {src} to {pod}:{dest}: {err.stderr.decode().strip()}") from err
        return dest

    def copy_from(self, namespace: str, pod: str, container: str, src_path: str, dest_dir: str) -> str:
        """Copy a file out of a container into a local directory."""
        os.makedirs(dest_dir, exist_ok=True)
        dest = os.path.join(dest_dir, os.path.basename(src_path))
        try:
            sh.kubectl("cp", f"{namespace}/{pod}:{src_path}", dest, "-c", container, _timeout=self._copy_timeout)
        except sh.ErrorReturnCode as err:
            raise SoloError(f"failed to copy {pod}:{src_path}: {err.stderr.decode().strip()}") from err
        return dest

    # ------------------------------------------------------------------
    # Port forwarding
    # ------------------------------------------------------------------

    def port_forward(self, namespace: str, pod: str, local_port: int, pod_port: int) -> PortForward:
        process = subprocess.Popen(
            ["kubectl", "port-forward", "-n", namespace, f"pod/{pod}", f"{local_port}:{pod_port}"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
        )
        logger.debug("Port forwarding %s:%d -> localhost:%d", pod, pod_port, local_port)
        return PortForward(namespace, pod, local_port, pod_port, process)

    def stop_port_forward(self, forward: PortForward) -> None:
        if forward.process.poll() is None:
            forward.process.terminate()
            try:
                forward.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                forward.process.kill()
        logger.debug("Stopped port forward to %s:%d", forward.pod, forward.pod_port)

    # ------------------------------------------------------------------
    # Leases
    # ------------------------------------------------------------------

    def read_lease(self, namespace: str, name: str) -> dict | None:
        """Return the lease object, or None when it does not exist."""
        try:
            return json.loads(self._kubectl(["get", "lease", name, "-n", namespace, "-o", "json"]))
        except ResourceNotFoundError:
            return None

    def create_lease(self, namespace: str, name: str, holder_identity: str, duration_seconds: int) -> dict:
        now = format_lease_time(datetime.now(timezone.utc))
        manifest = {
            "apiVersion": "coordination.k8s.io/v1",
            "kind": "Lease",
            "metadata": {"name": name, "namespace": namespace},
            "spec": {
                "holderIdentity": holder_identity,
                "leaseDurationSeconds": duration_seconds,
                "acquireTime": now,
                "renewTime": now,
            },
        }
        return json.loads(self._kubectl(["create", "-f", "-", "-o", "json"], input=json.dumps(manifest)))

    def replace_lease(self, lease: dict) -> dict:
        return json.loads(self._kubectl(["replace", "-f", "-", "-o", "json"], input=json.dumps(lease)))

    def renew_lease(self, lease: dict) -> dict:
        lease["spec"]["renewTime"] = format_lease_time(datetime.now(timezone.utc))
        return self.replace_lease(lease)

    def transfer_lease(self, lease: dict, holder_identity: str) -> dict:
        now = format_lease_time(datetime.now(timezone.utc))
        spec = lease["spec"]
        spec["holderIdentity"] = holder_identity
        spec["acquireTime"] = now
        spec["renewTime"] = now
        spec["leaseTransitions"] = int(spec.get("leaseTransitions") or 0) + 1
        return self.replace_lease(lease)

    def delete_lease(self, namespace: str, name: str) -> None:
        self._kubectl(["delete", "lease", name, "-n", namespace, "--ignore-not-found"])
