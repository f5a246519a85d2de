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
Tests for flag resolution and the sticky flag cache.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest
import yaml

from solo_manager import flags
from solo_manager.config import ConfigManager
from solo_manager.errors import MissingArgumentError


class TestResolveFlags:

    def test_explicit_value_wins_over_cache(self, tmp_path):
        config_file = tmp_path / "solo.yaml"
        config_file.write_text(yaml.safe_dump({"flags": {"namespace": "cached-ns"}}))
        manager = ConfigManager(config_file, flags.STICKY_FLAGS)
        manager.update({"namespace": "solo-e2e", "quiet": None})

        values = flags.resolve_flags(manager, flags.STOP_FLAGS)

        assert values["namespace"] == "solo-e2e"

    def test_cached_sticky_value_is_reused(self, tmp_path):
        config_file = tmp_path / "solo.yaml"
        config_file.write_text(yaml.safe_dump({"flags": {"namespace": "cached-ns"}}))
        manager = ConfigManager(config_file, flags.STICKY_FLAGS)
        manager.update({"namespace": None})

        assert flags.resolve_flags(manager, flags.STOP_FLAGS)["namespace"] == "cached-ns"

    def test_missing_required_flag_raises(self, tmp_path):
        manager = ConfigManager(tmp_path / "solo.yaml", flags.STICKY_FLAGS)
        with pytest.raises(MissingArgumentError, match="No value set for required flag: namespace"):
            flags.resolve_flags(manager, flags.STOP_FLAGS)

    def test_prompter_fills_required_flag(self, tmp_path):
        manager = ConfigManager(tmp_path / "solo.yaml", flags.STICKY_FLAGS)
        prompter = Mock(return_value="prompted-ns")

        values = flags.resolve_flags(manager, flags.STOP_FLAGS, prompter)

        assert values["namespace"] == "prompted-ns"
        prompter.assert_called_once_with(flags.NAMESPACE)

    def test_quiet_mode_disables_prompts(self, tmp_path):
        manager = ConfigManager(tmp_path / "solo.yaml", flags.STICKY_FLAGS)
        manager.update({"quiet": True})
        prompter = Mock(return_value="prompted-ns")

        with pytest.raises(MissingArgumentError):
            flags.resolve_flags(manager, flags.STOP_FLAGS, prompter)
        prompter.assert_not_called()

    def test_dynamic_and_static_defaults(self, tmp_path):
        manager = ConfigManager(tmp_path / "solo.yaml", flags.STICKY_FLAGS)
        manager.update({"namespace": "solo-e2e"})

        values = flags.resolve_flags(manager, flags.ADD_FLAGS, dynamic_defaults={"cache_dir": "/cache"})

        assert values["cache_dir"] == "/cache"
        assert values["endpoint_type"] == "FQDN"
        assert values["generate_gossip_keys"] is False
        assert values["app"] == flags.APP.default
        assert values["admin_key"] is None

    def test_resolution_is_idempotent(self, tmp_path):
        manager = ConfigManager(tmp_path / "solo.yaml", flags.STICKY_FLAGS)
        manager.update({"namespace": "solo-e2e", "node_alias": "node2"})

        first = flags.resolve_flags(manager, flags.DELETE_FLAGS, dynamic_defaults={"cache_dir": "/cache"})
        second = flags.resolve_flags(manager, flags.DELETE_FLAGS, dynamic_defaults={"cache_dir": "/cache"})

        assert first == second


class TestConfigManager:

    def test_persist_writes_only_sticky_flags(self, tmp_path):
        config_file = tmp_path / "home" / "solo.yaml"
        manager = ConfigManager(config_file, flags.STICKY_FLAGS)
        manager.update({"namespace": "solo-e2e", "node_alias": "node2", "force": True})

        manager.persist()

        data = yaml.safe_load(config_file.read_text())
        assert data == {"flags": {"namespace": "solo-e2e"}}

    def test_malformed_cache_is_ignored(self, tmp_path):
        config_file = tmp_path / "solo.yaml"
        config_file.write_text("- not\n- a mapping\n")
        manager = ConfigManager(config_file, flags.STICKY_FLAGS)
        assert manager.has_flag("namespace") is False


class TestFlagSets:

    def test_phase_flag_sets_extend_the_full_set(self):
        assert flags.OUTPUT_DIR in flags.ADD_PREPARE_FLAGS.optional
        assert flags.INPUT_DIR in flags.ADD_EXECUTE_FLAGS.optional
        assert flags.ADD_PREPARE_FLAGS.required == flags.ADD_FLAGS.required

    def test_bool_flags_are_detected_from_default(self):
        assert flags.FORCE.is_bool
        assert not flags.NAMESPACE.is_bool

    def test_sticky_flags(self):
        assert "namespace" in flags.STICKY_FLAGS
        assert "node_aliases_unparsed" in flags.STICKY_FLAGS
        assert "force" not in flags.STICKY_FLAGS
