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

"""Operator supplied gRPC proxy TLS certificates, copied into cluster secrets."""

from __future__ import annotations

import base64
import logging
import os
from dataclasses import dataclass

from solo_manager.constants import GrpcProxyTlsType
from solo_manager.errors import SoloError
from solo_manager.kube import ClusterOps
from solo_manager.pipeline import Fork, Leaf
from solo_manager import templates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AliasPath:
    node_alias: str
    file_path: str


def parse_and_validate(unparsed: str, kind: str) -> list[AliasPath]:
    """Parse ``alias=path,...`` and require every path to be a file.

    Args:
        unparsed: Raw flag value, e.g. ``node1=/tmp/grpc.crt``.
        kind: Description used in error messages.

    Raises:
        SoloError: If an entry is malformed or names a missing file.
    """
    if not unparsed:
        return []
    parsed = []
    for index, entry in enumerate(unparsed.split(",")):
        alias, sep, path = entry.partition("=")
        if not sep or not alias or not path:
            raise SoloError(f"Failed to parse input {unparsed} of type {kind} on {entry}, index {index}")
        if not os.path.isfile(path):
            raise SoloError(f"File doesn't exist on path {unparsed} input of type {kind} on {entry}, index {index}")
        parsed.append(AliasPath(alias, path))
    return parsed


def build_secret_data(cert_path: str, key_path: str, tls_type: GrpcProxyTlsType) -> dict[str, str]:
    """Secret data in the layout each proxy expects.

    HAProxy reads one combined PEM; Envoy reads certificate and key apart.
    """
    if tls_type == GrpcProxyTlsType.GRPC:
        with open(cert_path) as f:
            cert = f.read()
        with open(key_path) as f:
            key = f.read()
        return {"tls.pem": base64.b64encode(f"{cert}\n{key}".encode()).decode()}

    with open(cert_path, "rb") as f:
        cert_bytes = f.read()
    with open(key_path, "rb") as f:
        key_bytes = f.read()
    return {
        "tls.crt": base64.b64encode(cert_bytes).decode(),
        "tls.key": base64.b64encode(key_bytes).decode(),
    }


class CertificateManager:
    """Copies gRPC and gRPC-web proxy certificates into namespaced secrets.

    Args:
        cluster: Cluster operations used to create secrets.
    """

    def __init__(self, cluster: ClusterOps) -> None:
        self._cluster = cluster

    def copy_tls_certificate(self, namespace: str, node_alias: str, cert_path: str, key_path: str,
                             tls_type: GrpcProxyTlsType) -> None:
        name = templates.render_grpc_tls_secret_name(node_alias, tls_type)
        try:
            data = build_secret_data(cert_path, key_path, tls_type)
            labels = templates.render_grpc_tls_secret_labels(node_alias, tls_type)
            if not self._cluster.create_secret(name, namespace, "Opaque", data, labels, recreate=True):
                raise SoloError(f"failed to create secret for tls certificates for node '{node_alias}'")
        except (OSError, SoloError) as err:
            message = f"failed to copy tls certificate to secret '{name}': {err}"
            logger.error(message)
            raise SoloError(message) from err

    def build_copy_tls_certificates_tasks(
        self,
        namespace: str,
        grpc_tls_certificate_paths: str | None,
        grpc_web_tls_certificate_paths: str | None,
        grpc_tls_key_paths: str | None,
        grpc_web_tls_key_paths: str | None,
    ) -> Fork:
        """One concurrent secret-copy leaf per supplied certificate.

        Raises:
            SoloError: If certificate and key lists do not pair up.
        """
        groups = [
            ("Copy gRPC TLS Certificate data", GrpcProxyTlsType.GRPC,
             parse_and_validate(grpc_tls_certificate_paths, "gRPC TLS Certificate paths"),
             parse_and_validate(grpc_tls_key_paths, "gRPC TLS Certificate Key paths")),
            ("Copy gRPC Web TLS data", GrpcProxyTlsType.GRPC_WEB,
             parse_and_validate(grpc_web_tls_certificate_paths, "gRPC Web TLS Certificate paths"),
             parse_and_validate(grpc_web_tls_key_paths, "gRPC Web Certificate TLS Key paths")),
        ]

        children = []
        for title, tls_type, certs, keys in groups:
            if len(certs) != len(keys):
                kind = "gRPC TLS" if tls_type == GrpcProxyTlsType.GRPC else "gRPC Web TLS"
                raise SoloError(f"The structure of the {kind} Certificate doesn't match "
                                f"Certificates: {[c.file_path for c in certs]}, Keys: {[k.file_path for k in keys]}")
            for cert, key in zip(certs, keys):
                children.append(Leaf(
                    f"{title} for node {cert.node_alias}",
                    lambda ctx, task, cert=cert, key=key, tls_type=tls_type: self.copy_tls_certificate(
                        namespace, cert.node_alias, cert.file_path, key.file_path, tls_type),
                ))
        return Fork("Copy gRPC TLS certificates", children, concurrent=True)
