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

"""Exception hierarchy shared by every solo_manager module.

All errors derive from :class:`SoloError`, which itself is a
``RuntimeError`` so that callers catching the broad runtime failures
raised by helm/kubectl wrappers also see domain failures. Wrapping is
always done with ``raise ... from err`` to keep the cause chain.
"""

from __future__ import annotations


class SoloError(RuntimeError):
    """Base class for all operator facing failures."""


class MissingArgumentError(SoloError):
    """A required flag or argument has no value."""


class IllegalArgumentError(SoloError):
    """An argument has a value that cannot be used.

    Args:
        message: Human readable reason.
        value: The offending value, kept for diagnostics.
    """

    def __init__(self, message: str, value: object = None) -> None:
        super().__init__(message)
        self.value = value


class ResourceNotFoundError(SoloError):
    """A cluster resource that was looked up does not exist.

    Args:
        message: Human readable reason.
        resource: Name of the missing resource.
    """

    def __init__(self, message: str, resource: str | None = None) -> None:
        super().__init__(message)
        self.resource = resource


class LeaseAcquisitionError(SoloError):
    """The namespace lease is held by another process."""


class LeaseRelinquishmentError(SoloError):
    """The namespace lease could not be released."""


class LedgerTransactionError(SoloError):
    """A ledger transaction finished with a non-success receipt."""


class KeyMaterialError(SoloError):
    """Key or certificate material is missing, malformed, or mismatched."""
