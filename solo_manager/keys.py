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

"""Gossip signing keys, gRPC TLS keys, and their PEM files.

Signing keys are self-signed RSA-3072 CA certificates identifying a node
on the gossip network, and each one issues an EC P-384 agreement key
stored beside it. TLS keys are self-signed RSA-4096 leaf
certificates valid for both server and client authentication. Both use
SHA-384 signatures and a long validity period.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from solo_manager import templates
from solo_manager.constants import (
    CERTIFICATE_VALIDITY_YEARS,
    SIGNING_KEY_PREFIX,
    SIGNING_KEY_SIZE,
    TLS_KEY_SIZE,
)
from solo_manager.errors import IllegalArgumentError, KeyMaterialError, MissingArgumentError
from solo_manager.helpers import backup_old_pem_keys, backup_old_tls_keys
from solo_manager.pipeline import Fork, Leaf

logger = logging.getLogger(__name__)

AGREEMENT_KEY_PREFIX = "a"


@dataclass
class NodeKeyObject:
    """A private key with its certificate and certificate chain."""

    private_key: object
    certificate: x509.Certificate
    certificate_chain: list[x509.Certificate] = field(default_factory=list)


@dataclass(frozen=True)
class PrivateKeyAndCertificateFiles:
    private_key_file: str
    certificate_file: str


def get_der_from_pem_certificate(path: str) -> bytes:
    """DER bytes of the first certificate in a PEM file."""
    with open(path, "rb") as f:
        certificate = x509.load_pem_x509_certificate(f.read())
    return certificate.public_bytes(serialization.Encoding.DER)


def compute_certificate_hash(path: str) -> bytes:
    """SHA-384 digest of a PEM certificate's DER encoding."""
    return hashlib.sha384(get_der_from_pem_certificate(path)).digest()


class KeyManager:
    """Generates, stores, loads and stages node key material.

    Args:
        validity_years: Years a generated certificate stays valid.
    """

    def __init__(self, validity_years: int = CERTIFICATE_VALIDITY_YEARS) -> None:
        self._validity = timedelta(days=365 * validity_years)

    # ------------------------------------------------------------------
    # File layout
    # ------------------------------------------------------------------

    @staticmethod
    def prepare_node_key_file_paths(node_alias: str, key_dir: str) -> PrivateKeyAndCertificateFiles:
        if not node_alias:
            raise MissingArgumentError("node alias is required")
        if not key_dir:
            raise MissingArgumentError("key directory is required")
        return PrivateKeyAndCertificateFiles(
            private_key_file=os.path.join(key_dir, templates.render_gossip_pem_private_key_file(node_alias)),
            certificate_file=os.path.join(key_dir, templates.render_gossip_pem_public_key_file(node_alias)),
        )

    @staticmethod
    def prepare_agreement_key_file_paths(node_alias: str, key_dir: str) -> PrivateKeyAndCertificateFiles:
        if not node_alias:
            raise MissingArgumentError("node alias is required")
        if not key_dir:
            raise MissingArgumentError("key directory is required")
        return PrivateKeyAndCertificateFiles(
            private_key_file=os.path.join(key_dir, f"{AGREEMENT_KEY_PREFIX}-private-{node_alias}.pem"),
            certificate_file=os.path.join(key_dir, f"{AGREEMENT_KEY_PREFIX}-public-{node_alias}.pem"),
        )

    @staticmethod
    def prepare_tls_key_file_paths(node_alias: str, key_dir: str) -> PrivateKeyAndCertificateFiles:
        if not node_alias:
            raise MissingArgumentError("node alias is required")
        if not key_dir:
            raise MissingArgumentError("key directory is required")
        return PrivateKeyAndCertificateFiles(
            private_key_file=os.path.join(key_dir, templates.render_tls_key_file(node_alias)),
            certificate_file=os.path.join(key_dir, templates.render_tls_cert_file(node_alias)),
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _validity_window(self) -> tuple[datetime, datetime]:
        not_before = datetime.now(timezone.utc) - timedelta(minutes=1)
        return not_before, not_before + self._validity

    def generate_signing_key(self, node_alias: str) -> NodeKeyObject:
        """Self-signed RSA CA certificate used as the node's gossip identity."""
        if not node_alias:
            raise MissingArgumentError("node alias is required")
        friendly_name = templates.render_node_friendly_name(SIGNING_KEY_PREFIX, node_alias)
        logger.debug("Generating %s-key for node %s", SIGNING_KEY_PREFIX, node_alias)

        key = rsa.generate_private_key(public_exponent=65537, key_size=SIGNING_KEY_SIZE)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, friendly_name)])
        not_before, not_after = self._validity_window()
        certificate = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(1)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=True, path_length=1), critical=True)
            .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH,
                                                  ExtendedKeyUsageOID.CLIENT_AUTH]), critical=True)
            .add_extension(x509.KeyUsage(
                digital_signature=False, content_commitment=False, key_encipherment=False,
                data_encipherment=False, key_agreement=False, key_cert_sign=True, crl_sign=True,
                encipher_only=False, decipher_only=False), critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
            .sign(key, hashes.SHA384())
        )
        return NodeKeyObject(private_key=key, certificate=certificate, certificate_chain=[certificate])

    def generate_agreement_key(self, node_alias: str, signing_key: NodeKeyObject) -> NodeKeyObject:
        """EC P-384 key certified by the node's signing key.

        Raises:
            MissingArgumentError: If the alias or signing key is missing.
            KeyMaterialError: If the issued certificate does not verify
                against the signing certificate.
        """
        if not node_alias:
            raise MissingArgumentError("node alias is required")
        if signing_key is None or signing_key.certificate is None:
            raise MissingArgumentError("no signing key found")
        friendly_name = templates.render_node_friendly_name(AGREEMENT_KEY_PREFIX, node_alias)

        key = ec.generate_private_key(ec.SECP384R1())
        not_before, not_after = self._validity_window()
        certificate = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, friendly_name)]))
            .issuer_name(signing_key.certificate.subject)
            .public_key(key.public_key())
            .serial_number(1)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=True,
                data_encipherment=False, key_agreement=False, key_cert_sign=False, crl_sign=False,
                encipher_only=False, decipher_only=False), critical=False)
            .sign(signing_key.private_key, hashes.SHA384())
        )
        try:
            certificate.verify_directly_issued_by(signing_key.certificate)
        except (InvalidSignature, ValueError, TypeError) as err:
            raise KeyMaterialError(f"failed to verify generated certificate for '{friendly_name}'") from err
        return NodeKeyObject(private_key=key, certificate=certificate,
                             certificate_chain=[certificate, signing_key.certificate])

    def generate_grpc_tls_key(self, node_alias: str, distinguished_name: x509.Name | None = None) -> NodeKeyObject:
        """Self-signed TLS certificate for a node's gRPC endpoints.

        Args:
            node_alias: Node the certificate is for.
            distinguished_name: Subject, defaults to ``CN=<node_alias>``.

        Returns:
            Key object holding an RSA key and a certificate with serverAuth
            and clientAuth extended key usages.
        """
        if not node_alias:
            raise MissingArgumentError("node alias is required")
        subject = distinguished_name or x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, node_alias)])
        logger.debug("Generating gRPC TLS key for node %s", node_alias)

        key = rsa.generate_private_key(public_exponent=65537, key_size=TLS_KEY_SIZE)
        not_before, not_after = self._validity_window()
        certificate = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(key.public_key())
            .serial_number(1)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=True,
                data_encipherment=True, key_agreement=False, key_cert_sign=False, crl_sign=False,
                encipher_only=False, decipher_only=False), critical=True)
            .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH,
                                                  ExtendedKeyUsageOID.CLIENT_AUTH]), critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
            .add_extension(x509.AuthorityKeyIdentifier.from_issuer_public_key(key.public_key()), critical=False)
            .sign(key, hashes.SHA384())
        )
        return NodeKeyObject(private_key=key, certificate=certificate, certificate_chain=[certificate])

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def store_node_key(self, node_alias: str, node_key: NodeKeyObject,
                       files: PrivateKeyAndCertificateFiles) -> PrivateKeyAndCertificateFiles:
        """Write a key object to its PEM files.

        The certificate file is rewritten from scratch so that no chain
        entries from an earlier run survive.

        Raises:
            MissingArgumentError: If any argument or key field is missing.
        """
        if not node_alias:
            raise MissingArgumentError("node alias is required")
        if node_key is None or node_key.private_key is None:
            raise MissingArgumentError("private key is required")
        if node_key.certificate is None:
            raise MissingArgumentError("certificate is required")
        if not node_key.certificate_chain:
            raise MissingArgumentError("certificate chain is required")
        if files is None:
            raise MissingArgumentError("key file paths are required")

        os.makedirs(os.path.dirname(files.private_key_file) or ".", exist_ok=True)
        with open(files.private_key_file, "wb") as f:
            f.write(node_key.private_key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            ))
        with open(files.certificate_file, "wb") as f:
            for certificate in node_key.certificate_chain:
                f.write(certificate.public_bytes(serialization.Encoding.PEM))
        logger.debug("Stored key files for %s: %s", node_alias, files)
        return files

    def load_node_key(self, node_alias: str, files: PrivateKeyAndCertificateFiles) -> NodeKeyObject:
        if not node_alias:
            raise MissingArgumentError("node alias is required")
        for path in (files.private_key_file, files.certificate_file):
            if not os.path.isfile(path):
                raise KeyMaterialError(f"missing key file for {node_alias}: {path}")
        try:
            with open(files.private_key_file, "rb") as f:
                private_key = serialization.load_pem_private_key(f.read(), password=None)
            with open(files.certificate_file, "rb") as f:
                chain = x509.load_pem_x509_certificates(f.read())
        except ValueError as err:
            raise KeyMaterialError(f"invalid key material for {node_alias}: {err}") from err
        return NodeKeyObject(private_key=private_key, certificate=chain[0], certificate_chain=chain)

    def store_signing_key(self, node_alias: str, node_key: NodeKeyObject, key_dir: str) -> PrivateKeyAndCertificateFiles:
        return self.store_node_key(node_alias, node_key, self.prepare_node_key_file_paths(node_alias, key_dir))

    def load_signing_key(self, node_alias: str, key_dir: str) -> NodeKeyObject:
        return self.load_node_key(node_alias, self.prepare_node_key_file_paths(node_alias, key_dir))

    def store_tls_key(self, node_alias: str, node_key: NodeKeyObject, key_dir: str) -> PrivateKeyAndCertificateFiles:
        return self.store_node_key(node_alias, node_key, self.prepare_tls_key_file_paths(node_alias, key_dir))

    def load_tls_key(self, node_alias: str, key_dir: str) -> NodeKeyObject:
        return self.load_node_key(node_alias, self.prepare_tls_key_file_paths(node_alias, key_dir))

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    @staticmethod
    def copy_node_keys_to_staging(files: PrivateKeyAndCertificateFiles, dest_dir: str) -> None:
        os.makedirs(dest_dir, exist_ok=True)
        for path in (files.private_key_file, files.certificate_file):
            if not os.path.isfile(path):
                raise KeyMaterialError(f"key file does not exist: {path}")
            shutil.copyfile(path, os.path.join(dest_dir, os.path.basename(path)))

    def copy_gossip_keys_to_staging(self, keys_dir: str, staging_keys_dir: str, node_aliases: list[str]) -> None:
        for alias in node_aliases:
            self.copy_node_keys_to_staging(self.prepare_node_key_file_paths(alias, keys_dir), staging_keys_dir)

    def copy_tls_keys_to_staging(self, keys_dir: str, staging_keys_dir: str, node_aliases: list[str]) -> None:
        for alias in node_aliases:
            self.copy_node_keys_to_staging(self.prepare_tls_key_file_paths(alias, keys_dir), staging_keys_dir)

    # ------------------------------------------------------------------
    # Batch tasks
    # ------------------------------------------------------------------

    @staticmethod
    def _backup(backup_fn, node_aliases: list[str], keys_dir: str, cur_date: datetime) -> None:
        backup_dir = backup_fn(node_aliases, keys_dir, cur_date)
        logger.debug("Old key files moved to %s", backup_dir)

    def task_generate_gossip_keys(self, node_aliases: list[str], keys_dir: str, cur_date: datetime) -> Fork:
        """Back up existing gossip keys, then generate one key per alias in order."""
        if not isinstance(node_aliases, list):
            raise IllegalArgumentError("node aliases must be a list", node_aliases)

        children = [Leaf("Backup old files",
                         lambda ctx, task: self._backup(backup_old_pem_keys, node_aliases, keys_dir, cur_date))]
        for alias in node_aliases:
            children.append(Leaf(f"Gossip key for node: {alias}",
                                 lambda ctx, task, alias=alias: self._generate_gossip_key(alias, keys_dir)))
        return Fork("Generate gossip keys", children, concurrent=False)

    def _generate_gossip_key(self, node_alias: str, keys_dir: str) -> None:
        signing_key = self.generate_signing_key(node_alias)
        files = self.store_signing_key(node_alias, signing_key, keys_dir)
        # the agreement certificate is issued by the signing key just generated
        agreement_key = self.generate_agreement_key(node_alias, signing_key)
        self.store_node_key(node_alias, agreement_key,
                            self.prepare_agreement_key_file_paths(node_alias, keys_dir))
        logger.debug("Generated gossip key %s", files.private_key_file)

    def task_generate_tls_keys(self, node_aliases: list[str], keys_dir: str, cur_date: datetime) -> Fork:
        """Back up existing TLS keys, then generate one key per alias in order."""
        if not isinstance(node_aliases, list):
            raise IllegalArgumentError("node aliases must be a list", node_aliases)

        children = [Leaf("Backup old files",
                         lambda ctx, task: self._backup(backup_old_tls_keys, node_aliases, keys_dir, cur_date))]
        for alias in node_aliases:
            children.append(Leaf(f"TLS key for node: {alias}",
                                 lambda ctx, task, alias=alias: self._generate_tls_key(alias, keys_dir)))
        return Fork("Generate gRPC TLS keys", children, concurrent=False)

    def _generate_tls_key(self, node_alias: str, keys_dir: str) -> None:
        tls_key = self.generate_grpc_tls_key(node_alias)
        files = self.store_tls_key(node_alias, tls_key, keys_dir)
        logger.debug("Generated TLS key %s", files.private_key_file)
