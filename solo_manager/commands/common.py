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

"""Wiring shared by the command groups: options, prompts and collaborators."""

from __future__ import annotations

from typing import Any

import typer

from solo_manager.accounts import AccountManager
from solo_manager.certificates import CertificateManager
from solo_manager.charts import ChartManager
from solo_manager.config import ConfigManager, SoloSettings
from solo_manager.context import CommandContext
from solo_manager.flags import STICKY_FLAGS, Flag
from solo_manager.keys import KeyManager
from solo_manager.kube import ClusterOps, require_command
from solo_manager.lease import LeaseManager
from solo_manager.network_nodes import NetworkNodes
from solo_manager.platform import PlatformInstaller
from solo_manager.profiles import ProfileManager
from solo_manager.services import ClusterStateReader
from solo_manager.snapshot import ContextSnapshotStore


def flag_option(flag: Flag) -> Any:
    """Typer option for a flag; unset options stay None so cached values apply."""
    if flag.is_bool:
        return typer.Option(None, f"{flag.option}/--no-{flag.option[2:]}", help=flag.help)
    return typer.Option(None, flag.option, help=flag.help)


def typer_prompter(flag: Flag) -> Any:
    """Ask the operator for a required flag that has no value."""
    if flag.is_bool:
        return typer.confirm(flag.prompt or flag.help, default=bool(flag.default))
    return typer.prompt(flag.prompt or flag.help, default=flag.default)


def build_command_context(settings: SoloSettings | None = None, interactive: bool = True) -> CommandContext:
    """Construct the collaborators of one CLI invocation.

    Raises:
        SoloError: If kubectl or helm is not installed.
    """
    for tool in ("kubectl", "helm"):
        require_command(tool)

    settings = settings or SoloSettings()
    cluster = ClusterOps()
    state_reader = ClusterStateReader(cluster)
    return CommandContext(
        settings=settings,
        config_manager=ConfigManager(settings.config_file, STICKY_FLAGS),
        cluster=cluster,
        state_reader=state_reader,
        charts=ChartManager(),
        accounts=AccountManager(settings, cluster, state_reader),
        keys=KeyManager(),
        platform=PlatformInstaller(cluster),
        network_nodes=NetworkNodes(cluster, settings.logs_dir),
        profiles=ProfileManager(str(settings.cache_dir)),
        certificates=CertificateManager(cluster),
        leases=LeaseManager(cluster, settings),
        snapshots=ContextSnapshotStore(),
        prompter=typer_prompter if interactive else None,
    )
