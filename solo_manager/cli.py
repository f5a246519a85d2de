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
cli.py - Unified CLI for solo network node management.

Subcommands:
    node      Node lifecycle (add, delete, update, upgrade, start, stop, freeze, ...)
    account   System account key rotation

Examples:
    # Add a node, generating its gossip and TLS keys
    solo node add --namespace solo-e2e --gossip-keys --tls-keys

    # Split an upgrade across three invocations
    solo node upgrade-prepare --namespace solo-e2e --output-dir ./ctx
    solo node upgrade-submit-transactions --namespace solo-e2e --input-dir ./ctx
    solo node upgrade-execute --namespace solo-e2e --input-dir ./ctx

    # Rotate system account keys
    solo account init --namespace solo-e2e

Flag values are cached in ``$SOLO_HOME/solo.yaml``; sticky flags such as
--namespace are reused by later commands when omitted.
"""

from __future__ import annotations

import logging
import sys

import typer

from solo_manager import console
from solo_manager.commands import account_cmd, node_cmd

app = typer.Typer(
    help="Unified CLI for solo network node management.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(node_cmd.app, name="node")
app.add_typer(account_cmd.app, name="account")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
