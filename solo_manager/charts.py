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

"""Helm chart operations for the solo deployment chart."""

from __future__ import annotations

import logging
import os

import sh

from solo_manager import console
from solo_manager.constants import SOLO_CHARTS_URL
from solo_manager.errors import SoloError

logger = logging.getLogger(__name__)


def prepare_chart_path(chart_directory: str | None, chart_name: str, repo_url: str = SOLO_CHARTS_URL) -> str:
    """Resolve a chart reference from a local directory or the OCI repo.

    Args:
        chart_directory: Local charts checkout, or None to use the repo.
        chart_name: Chart name inside the directory or repo.
        repo_url: OCI repository holding released charts.

    Returns:
        A path or ``oci://`` reference accepted by ``helm``.

    Raises:
        SoloError: If a local chart directory was given but does not exist.
    """
    if chart_directory:
        chart_path = os.path.join(chart_directory, chart_name)
        if not os.path.isdir(chart_path):
            raise SoloError(f"chart directory does not exist: {chart_path}")
        return chart_path
    return f"{repo_url.rstrip('/')}/{chart_name}"


class ChartManager:
    """Thin wrapper around the helm CLI."""

    def is_installed(self, namespace: str, release: str) -> bool:
        try:
            out = str(sh.helm("list", "-n", namespace, "-q", "--filter", f"^{release}$"))
        except sh.ErrorReturnCode as err:
            raise SoloError(f"failed to list helm releases in {namespace}: "
                            f"{err.stderr.decode().strip()}") from err
        return release in out.split()

    def install(self, namespace: str, release: str, chart_ref: str, version: str | None = None,
                values_args: list[str] | None = None) -> None:
        args = ["install", release, chart_ref, "--namespace", namespace, "--create-namespace"]
        if version:
            args.extend(["--version", version])
        args.extend(values_args or [])
        self._helm(args, f"failed to install {release}")
        console.print(f"[green]✅ Installed chart {release}[/green]")

    def uninstall(self, namespace: str, release: str) -> None:
        try:
            sh.helm("uninstall", release, "-n", namespace)
        except sh.ErrorReturnCode_1:
            console.print(f"[yellow]ℹ️  Release {release} not found in {namespace}[/yellow]")

    def upgrade(self, namespace: str, release: str, chart_ref: str, version: str | None = None,
                values_args: list[str] | None = None, reuse_values: bool = True) -> None:
        """Upgrade a release, keeping previously supplied values by default."""
        args = ["upgrade", release, chart_ref, "--namespace", namespace]
        if reuse_values:
            args.append("--reuse-values")
        if version:
            args.extend(["--version", version])
        args.extend(values_args or [])
        logger.debug("helm %s", " ".join(args))
        self._helm(args, f"failed to upgrade {release}")

    @staticmethod
    def _helm(args: list[str], message: str) -> None:
        try:
            sh.helm(*args)
        except sh.ErrorReturnCode as err:
            raise SoloError(f"{message}: {err.stderr.decode().strip()}") from err
