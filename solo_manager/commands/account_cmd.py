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

"""
account_cmd.py - System account commands.

Usage:
    solo account init --namespace solo-e2e
    solo account init --namespace solo-e2e --dev
"""

from __future__ import annotations

import typer

from solo_manager import flags
from solo_manager.commands.common import build_command_context, flag_option
from solo_manager.orchestrator import AccountOrchestrator

app = typer.Typer(help="Manage system accounts of a solo network.")


@app.command("init")
def init(
    namespace: str | None = flag_option(flags.NAMESPACE),
    dev_mode: bool | None = flag_option(flags.DEV_MODE),
    quiet: bool | None = flag_option(flags.QUIET),
    node_aliases_unparsed: str | None = flag_option(flags.NODE_ALIASES),
) -> None:
    """Replace the genesis keys of the system accounts with fresh keys."""
    argv = {
        "namespace": namespace,
        "dev_mode": dev_mode,
        "quiet": quiet,
        "node_aliases_unparsed": node_aliases_unparsed,
    }
    tracker = AccountOrchestrator(build_command_context()).init(argv)
    if tracker.rejected_count:
        raise typer.Exit(code=1)
