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

"""Ledger client boundary: transactions, receipts, and account keys.

The network client itself is pluggable. Everything solo needs from the
ledger is expressed as a transaction dataclass handed to
``LedgerClient.execute``; a concrete client is built by the factory named
in ``SOLO_LEDGER_CLIENT_FACTORY`` (``module:callable``).
"""

from __future__ import annotations

import importlib
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from solo_manager.errors import IllegalArgumentError, LedgerTransactionError, SoloError
from solo_manager.helpers import ServiceEndpoint

SUCCESS = "SUCCESS"


# ============================================================================
# Account keys (ED25519, DER hex)
# ============================================================================

def generate_ed25519_private_key() -> str:
    """New ED25519 private key as PKCS8 DER hex."""
    key = Ed25519PrivateKey.generate()
    return key.private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).hex()


def _load_private_key(private_key_hex: str) -> Ed25519PrivateKey:
    try:
        key = serialization.load_der_private_key(bytes.fromhex(private_key_hex), password=None)
    except ValueError as err:
        raise IllegalArgumentError("invalid ED25519 private key", private_key_hex) from err
    if not isinstance(key, Ed25519PrivateKey):
        raise IllegalArgumentError("private key is not an ED25519 key", private_key_hex)
    return key


def public_key_of(private_key_hex: str) -> str:
    """DER hex SubjectPublicKeyInfo of an ED25519 private key."""
    return _load_private_key(private_key_hex).public_key().public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).hex()


def is_ed25519_public_key(public_key_hex: str) -> bool:
    try:
        key = serialization.load_der_public_key(bytes.fromhex(public_key_hex))
    except ValueError:
        return False
    return isinstance(key, Ed25519PublicKey)


# ============================================================================
# Transactions
# ============================================================================

class FreezeType(str, Enum):
    FREEZE_ONLY = "FREEZE_ONLY"
    PREPARE_UPGRADE = "PREPARE_UPGRADE"
    FREEZE_UPGRADE = "FREEZE_UPGRADE"


@dataclass(frozen=True)
class TransferTransaction:
    """Move ``amount`` hbar from one account to another."""

    from_account: str
    to_account: str
    amount: int


@dataclass(frozen=True)
class AccountUpdateTransaction:
    account_id: str
    key: str | None = None
    staked_node_id: int | None = None


@dataclass(frozen=True)
class FileUpdateTransaction:
    file_id: str
    contents: bytes


@dataclass(frozen=True)
class FileAppendTransaction:
    file_id: str
    contents: bytes


@dataclass(frozen=True)
class FreezeTransaction:
    freeze_type: FreezeType
    file_id: str | None = None
    file_hash: str | None = None
    start_time: datetime | None = None


@dataclass(frozen=True)
class NodeCreateTransaction:
    account_id: str
    gossip_endpoints: tuple[ServiceEndpoint, ...]
    service_endpoints: tuple[ServiceEndpoint, ...]
    gossip_ca_certificate: bytes
    certificate_hash: bytes
    admin_key: str


@dataclass(frozen=True)
class NodeUpdateTransaction:
    node_id: int
    account_id: str | None = None
    certificate_hash: bytes | None = None
    gossip_ca_certificate: bytes | None = None
    admin_key: str | None = None


@dataclass(frozen=True)
class NodeDeleteTransaction:
    node_id: int


Transaction = Union[
    TransferTransaction,
    AccountUpdateTransaction,
    FileUpdateTransaction,
    FileAppendTransaction,
    FreezeTransaction,
    NodeCreateTransaction,
    NodeUpdateTransaction,
    NodeDeleteTransaction,
]


@dataclass(frozen=True)
class Receipt:
    status: str
    account_id: str | None = None


@dataclass(frozen=True)
class AccountInfo:
    account_id: str
    keys: list[str] = field(default_factory=list)
    balance: int = 0


# ============================================================================
# Client protocol
# ============================================================================

class LedgerClient(Protocol):
    """Operations solo performs against the ledger network."""

    def set_operator(self, account_id: str, private_key: str) -> None: ...

    def execute(self, transaction: Transaction, signers: Sequence[str] = ()) -> Receipt: ...

    def get_account_info(self, account_id: str) -> AccountInfo: ...

    def get_account_balance(self, account_id: str) -> int: ...

    def ping(self, node_account_id: str) -> None: ...

    def close(self) -> None: ...


LedgerClientFactory = Callable[[dict[str, str]], LedgerClient]
"""Builds a client from a network map of ``host:port`` -> node account id."""


def load_client_factory(path: str | None) -> LedgerClientFactory:
    """Import the ledger client factory named by ``module:callable``.

    Raises:
        SoloError: If no factory is configured or it cannot be imported.
    """
    if not path:
        raise SoloError("no ledger client configured, set SOLO_LEDGER_CLIENT_FACTORY=module:callable")
    module_name, _, attr = path.partition(":")
    try:
        target = importlib.import_module(module_name)
        for part in attr.split("."):
            target = getattr(target, part)
    except (ImportError, AttributeError) as err:
        raise SoloError(f"failed to load ledger client factory '{path}': {err}") from err
    if not callable(target):
        raise SoloError(f"ledger client factory '{path}' is not callable")
    return target


def execute_transaction(client: LedgerClient, transaction: Transaction, *signers: str,
                        context: str | None = None) -> Receipt:
    """Execute a transaction and require a successful receipt.

    Args:
        client: Connected ledger client.
        transaction: Transaction to submit.
        *signers: Extra private keys (DER hex) that must sign.
        context: Account or node the transaction is about, added to errors.

    Raises:
        LedgerTransactionError: If the receipt status is not SUCCESS.
    """
    receipt = client.execute(transaction, signers)
    if receipt.status != SUCCESS:
        about = f" for {context}" if context else ""
        raise LedgerTransactionError(
            f"{type(transaction).__name__}{about} failed with status {receipt.status}")
    return receipt
