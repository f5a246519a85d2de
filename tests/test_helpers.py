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
Tests for flag parsing helpers, service endpoints and name templates.
"""

from __future__ import annotations

import os

import pytest

from solo_manager import templates
from solo_manager.constants import GrpcProxyTlsType
from solo_manager.errors import IllegalArgumentError, MissingArgumentError, SoloError
from solo_manager.helpers import (
    ServiceEndpoint,
    parse_alias_paths,
    parse_node_aliases,
    parse_stake_amounts,
    prepare_endpoints,
)


class TestFlagParsing:

    def test_node_aliases_drop_blanks(self):
        assert parse_node_aliases(" node1, node2,,node3 ") == ["node1", "node2", "node3"]
        assert parse_node_aliases(None) == []

    def test_stake_amounts(self):
        assert parse_stake_amounts("500,1000") == [500, 1000]
        with pytest.raises(IllegalArgumentError):
            parse_stake_amounts("500,-1")
        with pytest.raises(IllegalArgumentError):
            parse_stake_amounts("lots")

    def test_bare_path_applies_to_every_alias(self):
        assert parse_alias_paths("/build", ["node1", "node2"]) == {"node1": "/build", "node2": "/build"}

    def test_alias_paths(self):
        assert parse_alias_paths("node1=/a,node2=/b", ["node1"]) == {"node1": "/a", "node2": "/b"}
        with pytest.raises(IllegalArgumentError):
            parse_alias_paths("node1=/a,/b", ["node1"])


class TestServiceEndpoints:

    def test_fqdn_endpoints_use_default_port(self):
        endpoints = prepare_endpoints("FQDN", ["network-node1-svc.solo-e2e.svc", "node2.example:50212"], 50211)
        assert endpoints == [
            ServiceEndpoint(port=50211, domain_name="network-node1-svc.solo-e2e.svc"),
            ServiceEndpoint(port=50212, domain_name="node2.example"),
        ]

    def test_ip_endpoints_are_validated(self):
        assert prepare_endpoints("IP", ["10.0.0.1:50111"], 50111)[0].ip_address_v4 == "10.0.0.1"
        with pytest.raises(IllegalArgumentError, match="invalid IPv4 address"):
            prepare_endpoints("IP", ["not-an-ip"], 50111)

    def test_non_numeric_port(self):
        with pytest.raises(IllegalArgumentError, match="invalid port in endpoint: host:abc"):
            prepare_endpoints("FQDN", ["host:abc"], 50211)

    def test_unknown_endpoint_type(self):
        with pytest.raises(IllegalArgumentError, match="unknown endpoint type"):
            prepare_endpoints("DNS", ["host"], 1)

    def test_exactly_one_host_kind(self):
        with pytest.raises(IllegalArgumentError):
            ServiceEndpoint(port=1)
        with pytest.raises(IllegalArgumentError):
            ServiceEndpoint(port=1, domain_name="host", ip_address_v4="10.0.0.1")


class TestTemplates:

    def test_node_id_from_alias(self):
        assert templates.node_id_from_node_alias("node1") == 0
        assert templates.node_id_from_node_alias("node12") == 11
        with pytest.raises(SoloError):
            templates.node_id_from_node_alias("node")

    def test_next_node_alias(self):
        assert templates.next_node_alias("node2") == "node3"
        assert templates.next_node_alias("node9") == "node10"

    def test_staging_dir(self):
        path = templates.render_staging_dir("/cache", "v0.58.10")
        assert path == os.path.join("/cache", "v0.58", "staging", "v0.58.10")
        with pytest.raises(IllegalArgumentError):
            templates.render_staging_dir("/cache", "latest")
        with pytest.raises(MissingArgumentError):
            templates.render_staging_dir("", "v0.58.10")

    def test_alias_ip_mapping(self):
        assert templates.parse_node_alias_to_ip_mapping("node1=10.0.0.1, node2=10.0.0.2") == {
            "node1": "10.0.0.1", "node2": "10.0.0.2"}
        with pytest.raises(IllegalArgumentError):
            templates.parse_node_alias_to_ip_mapping("node1")

    def test_proxy_secret_names(self):
        assert templates.render_grpc_tls_secret_name("node1", GrpcProxyTlsType.GRPC) == "haproxy-proxy-secret-node1"
        assert templates.render_grpc_tls_secret_name("node1", GrpcProxyTlsType.GRPC_WEB) == \
            "envoy-proxy-secret-node1"
        assert templates.render_node_admin_key_name("node3") == "node3-admin"
