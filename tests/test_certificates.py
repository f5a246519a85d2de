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
Tests for copying operator supplied proxy certificates into secrets.
"""

from __future__ import annotations

import base64
from unittest.mock import MagicMock

import pytest

from solo_manager.certificates import AliasPath, CertificateManager, build_secret_data, parse_and_validate
from solo_manager.constants import GrpcProxyTlsType
from solo_manager.errors import SoloError


@pytest.fixture
def pem_files(tmp_path):
    cert = tmp_path / "grpc.crt"
    key = tmp_path / "grpc.key"
    cert.write_text("CERT")
    key.write_text("KEY")
    return str(cert), str(key)


class TestParseAndValidate:

    def test_entries(self, pem_files):
        cert, _ = pem_files
        assert parse_and_validate(f"node1={cert}", "certs") == [AliasPath("node1", cert)]
        assert parse_and_validate("", "certs") == []

    def test_malformed_entry(self):
        with pytest.raises(SoloError, match="Failed to parse input"):
            parse_and_validate("node1", "certs")

    def test_missing_file(self, tmp_path):
        with pytest.raises(SoloError, match="File doesn't exist"):
            parse_and_validate(f"node1={tmp_path / 'nope.crt'}", "certs")


class TestSecretData:

    def test_haproxy_gets_combined_pem(self, pem_files):
        data = build_secret_data(*pem_files, GrpcProxyTlsType.GRPC)
        assert base64.b64decode(data["tls.pem"]).decode() == "CERT\nKEY"

    def test_envoy_gets_separate_entries(self, pem_files):
        data = build_secret_data(*pem_files, GrpcProxyTlsType.GRPC_WEB)
        assert base64.b64decode(data["tls.crt"]) == b"CERT"
        assert base64.b64decode(data["tls.key"]) == b"KEY"


class TestCertificateManager:

    def test_copy_creates_labelled_secret(self, pem_files):
        cluster = MagicMock()
        cluster.create_secret.return_value = True

        CertificateManager(cluster).copy_tls_certificate("solo-e2e", "node1", *pem_files, GrpcProxyTlsType.GRPC)

        name, namespace, _, _, labels = cluster.create_secret.call_args.args
        assert (name, namespace) == ("haproxy-proxy-secret-node1", "solo-e2e")
        assert labels == {"haproxy-proxy-secret": "node1"}

    def test_copy_failure_is_reported(self, pem_files):
        cluster = MagicMock()
        cluster.create_secret.return_value = False

        with pytest.raises(SoloError, match="failed to copy tls certificate to secret 'envoy-proxy-secret-node1'"):
            CertificateManager(cluster).copy_tls_certificate("solo-e2e", "node1", *pem_files,
                                                             GrpcProxyTlsType.GRPC_WEB)

    def test_tasks_pair_certificates_with_keys(self, pem_files):
        cert, key = pem_files
        fork = CertificateManager(MagicMock()).build_copy_tls_certificates_tasks(
            "solo-e2e", f"node1={cert},node2={cert}", None, f"node1={key},node2={key}", None)

        assert fork.concurrent
        assert [leaf.title for leaf in fork.children] == [
            "Copy gRPC TLS Certificate data for node node1",
            "Copy gRPC TLS Certificate data for node node2",
        ]

    def test_mismatched_counts(self, pem_files):
        cert, key = pem_files
        with pytest.raises(SoloError, match="doesn't match"):
            CertificateManager(MagicMock()).build_copy_tls_certificates_tasks(
                "solo-e2e", f"node1={cert},node2={cert}", None, f"node1={key}", None)
