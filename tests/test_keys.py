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
Tests for gossip and gRPC TLS key material.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from types import SimpleNamespace

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtendedKeyUsageOID

from solo_manager.errors import KeyMaterialError, MissingArgumentError
from solo_manager.keys import KeyManager, compute_certificate_hash, get_der_from_pem_certificate
from solo_manager.pipeline import run_pipeline


@pytest.fixture(scope="module")
def key_manager():
    return KeyManager()


@pytest.fixture(scope="module")
def tls_key(key_manager):
    """One generated gRPC TLS key shared by the module (RSA generation is slow)."""
    return key_manager.generate_grpc_tls_key("node1")


class TestTlsKeys:

    def test_certificate_allows_server_and_client_auth(self, tls_key):
        usages = tls_key.certificate.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
        assert ExtendedKeyUsageOID.SERVER_AUTH in usages
        assert ExtendedKeyUsageOID.CLIENT_AUTH in usages

    def test_store_and_load(self, key_manager, tls_key, tmp_path):
        files = key_manager.store_tls_key("node1", tls_key, str(tmp_path))
        assert files.certificate_file.endswith("hedera-node1.crt")

        loaded = key_manager.load_tls_key("node1", str(tmp_path))
        assert loaded.certificate == tls_key.certificate

    def test_certificate_hash_is_sha384_of_der(self, key_manager, tls_key, tmp_path):
        files = key_manager.store_tls_key("node1", tls_key, str(tmp_path))
        der = tls_key.certificate.public_bytes(serialization.Encoding.DER)

        assert get_der_from_pem_certificate(files.certificate_file) == der
        assert compute_certificate_hash(files.certificate_file) == hashlib.sha384(der).digest()

    def test_missing_files(self, key_manager, tmp_path):
        with pytest.raises(KeyMaterialError, match="missing key file"):
            key_manager.load_tls_key("node9", str(tmp_path))

    def test_alias_required(self, key_manager):
        with pytest.raises(MissingArgumentError):
            key_manager.prepare_tls_key_file_paths("", "/keys")


class TestGossipKeys:

    def test_agreement_key_is_issued_by_signing_key(self, key_manager):
        signing = key_manager.generate_signing_key("node1")
        agreement = key_manager.generate_agreement_key("node1", signing)

        agreement.certificate.verify_directly_issued_by(signing.certificate)
        assert agreement.certificate_chain == [agreement.certificate, signing.certificate]
        assert signing.certificate.extensions.get_extension_for_class(x509.BasicConstraints).value.ca

    def test_generation_backs_up_old_files(self, key_manager, tmp_path):
        keys_dir = tmp_path / "keys"
        keys_dir.mkdir()
        (keys_dir / "s-private-node1.pem").write_text("old")
        cur_date = datetime(2026, 1, 2, 3, 4, 5)

        fork = key_manager.task_generate_gossip_keys(["node1"], str(keys_dir), cur_date)
        run_pipeline(fork.children, SimpleNamespace(), error_message="Error generating keys")

        backup = keys_dir / "unused-gossip-pem" / "20260102_030405" / "s-private-node1.pem"
        assert backup.read_text() == "old"
        assert (keys_dir / "s-public-node1.pem").exists()
        assert (keys_dir / "s-private-node1.pem").read_text() != "old"

    def test_generation_stores_agreement_key_issued_by_signing_key(self, key_manager, tmp_path):
        keys_dir = str(tmp_path / "keys")

        fork = key_manager.task_generate_gossip_keys(["node2"], keys_dir, datetime(2026, 1, 2, 3, 4, 5))
        run_pipeline(fork.children, SimpleNamespace(), error_message="Error generating keys")

        signing = key_manager.load_signing_key("node2", keys_dir)
        agreement = key_manager.load_node_key(
            "node2", key_manager.prepare_agreement_key_file_paths("node2", keys_dir))
        assert agreement.certificate_chain[-1] == signing.certificate
        agreement.certificate.verify_directly_issued_by(signing.certificate)
        assert (tmp_path / "keys" / "a-private-node2.pem").exists()
