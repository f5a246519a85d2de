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

"""Chart values files rendered from staged node configuration."""

from __future__ import annotations

import logging
import os

import yaml

from solo_manager.constants import PROFILE_VALUES_FILE

logger = logging.getLogger(__name__)

CONFIG_VERSION_PROPERTY = "hedera.config.version"


def bump_config_version(application_properties_path: str) -> int | None:
    """Increment ``hedera.config.version`` in place.

    Returns:
        The new version, or None when the property is absent.
    """
    with open(application_properties_path) as f:
        lines = f.read().split("\n")

    new_version = None
    for index, line in enumerate(lines):
        if line.startswith(f"{CONFIG_VERSION_PROPERTY}="):
            new_version = int(line.split("=", 1)[1]) + 1
            lines[index] = f"{CONFIG_VERSION_PROPERTY}={new_version}"
            break

    with open(application_properties_path, "w") as f:
        f.write("\n".join(lines))
    return new_version


class ProfileManager:
    """Writes helm values files into the local cache directory.

    Args:
        cache_dir: Directory receiving generated values files.
    """

    def __init__(self, cache_dir: str) -> None:
        self._cache_dir = cache_dir

    def prepare_values_for_node_transaction(self, config_txt_path: str,
                                            application_properties_path: str) -> str | None:
        """Render the config maps used after a membership change.

        The ``application.properties`` file is version-bumped before it is
        embedded so nodes pick up the new configuration.

        Args:
            config_txt_path: Staged ``config.txt`` downloaded from a node.
            application_properties_path: Staged ``application.properties``.

        Returns:
            Path of the values file, or None when either input is missing.
        """
        if not os.path.isfile(config_txt_path) or not os.path.isfile(application_properties_path):
            logger.debug("Skipping profile values, missing %s or %s",
                         config_txt_path, application_properties_path)
            return None

        with open(config_txt_path) as f:
            config_txt = f.read()
        bump_config_version(application_properties_path)
        with open(application_properties_path) as f:
            application_properties = f.read()

        values = {
            "hedera": {
                "configMaps": {
                    "configTxt": config_txt,
                    "applicationProperties": application_properties,
                },
            },
        }
        os.makedirs(self._cache_dir, exist_ok=True)
        values_file = os.path.join(self._cache_dir, PROFILE_VALUES_FILE)
        with open(values_file, "w") as f:
            yaml.safe_dump(values, f, default_flow_style=False)
        logger.debug("Wrote node values file %s", values_file)
        return values_file
