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

"""Namespace lease used as a cross-process lock on cluster mutations.

One Kubernetes ``Lease`` named after the namespace marks the holder. The
holder identity records user, host and PID so a lease left behind by a
dead process on the same machine can be taken over. While held, a timer
renews the lease at half its duration.
"""

from __future__ import annotations

import getpass
import itertools
import json
import logging
import os
import socket
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from solo_manager.config import SoloSettings
from solo_manager.constants import LEASE_RENEW_FRACTION
from solo_manager.errors import LeaseAcquisitionError, LeaseRelinquishmentError, SoloError
from solo_manager.kube import ClusterOps, parse_lease_time
from solo_manager.pipeline import TaskHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaseHolder:
    """Identity stored in ``spec.holderIdentity``."""

    username: str
    hostname: str
    process_id: int

    @classmethod
    def default(cls) -> LeaseHolder:
        return cls(getpass.getuser(), socket.gethostname(), os.getpid())

    @classmethod
    def from_json(cls, value: str) -> LeaseHolder:
        try:
            data = json.loads(value)
            return cls(str(data["username"]), str(data["hostname"]), int(data["processId"]))
        except (ValueError, KeyError, TypeError) as err:
            raise SoloError(f"invalid lease holder identity: {value}") from err

    def to_json(self) -> str:
        data = asdict(self)
        return json.dumps({"username": data["username"], "hostname": data["hostname"],
                           "processId": data["process_id"]})

    def is_same_machine(self, other: LeaseHolder) -> bool:
        return self.username == other.username and self.hostname == other.hostname

    def is_same_process(self, other: LeaseHolder) -> bool:
        return self.is_same_machine(other) and self.process_id == other.process_id

    def is_process_alive(self) -> bool:
        try:
            os.kill(self.process_id, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True


class LeaseRenewalService:
    """Renews scheduled leases on background timers."""

    def __init__(self) -> None:
        self._timers: dict[int, threading.Timer] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def schedule(self, lease: IntervalLease) -> int:
        schedule_id = next(self._ids)
        with self._lock:
            self._arm(schedule_id, lease)
        return schedule_id

    def _arm(self, schedule_id: int, lease: IntervalLease) -> None:
        """Start the next renewal timer; the caller holds the lock."""

        def _tick() -> None:
            renewed = lease.try_renew()
            with self._lock:
                if schedule_id not in self._timers:
                    return
                if renewed:
                    self._arm(schedule_id, lease)
                else:
                    del self._timers[schedule_id]
                    logger.warning("Lease %s could not be renewed", lease.lease_name)

        timer = threading.Timer(lease.duration_seconds * LEASE_RENEW_FRACTION, _tick)
        timer.daemon = True
        self._timers[schedule_id] = timer
        timer.start()

    def is_scheduled(self, schedule_id: int) -> bool:
        return schedule_id in self._timers

    def cancel(self, schedule_id: int | None) -> bool:
        with self._lock:
            timer = self._timers.pop(schedule_id, None) if schedule_id is not None else None
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> None:
        for schedule_id in list(self._timers):
            self.cancel(schedule_id)


class IntervalLease:
    """A renewable lease on one namespace.

    Args:
        cluster: Cluster operations for lease CRUD.
        renewal_service: Timer service renewing held leases.
        namespace: Namespace the lease protects; also the lease name.
        holder: Identity of this process, defaults to the current one.
        duration_seconds: Validity of the lease without renewal.
    """

    def __init__(self, cluster: ClusterOps, renewal_service: LeaseRenewalService, namespace: str,
                 holder: LeaseHolder | None = None, duration_seconds: int = 20) -> None:
        self._cluster = cluster
        self._renewal = renewal_service
        self.namespace = namespace
        self.lease_name = namespace
        self.holder = holder or LeaseHolder.default()
        self.duration_seconds = duration_seconds
        self._schedule_id: int | None = None

    # -- helpers --

    def _read(self) -> dict | None:
        return self._cluster.read_lease(self.namespace, self.lease_name)

    @staticmethod
    def _holder_of(lease: dict) -> LeaseHolder:
        return LeaseHolder.from_json(lease["spec"]["holderIdentity"])

    def _expired(self, lease: dict) -> bool:
        spec = lease.get("spec", {})
        last = parse_lease_time(spec.get("renewTime")) or parse_lease_time(spec.get("acquireTime"))
        if last is None:
            return True
        duration = int(spec.get("leaseDurationSeconds") or self.duration_seconds)
        return (datetime.now(timezone.utc) - last).total_seconds() > duration

    def _held_elsewhere(self, holder: LeaseHolder) -> LeaseAcquisitionError:
        return LeaseAcquisitionError(
            f"lease already acquired by '{holder.username}' on the '{holder.hostname}' "
            f"machine (PID: '{holder.process_id}')")

    # -- public API --

    def acquire(self) -> None:
        """Acquire the lease or raise if another live process holds it.

        Raises:
            LeaseAcquisitionError: If the lease is held by another process.
        """
        lease = self._read()
        if lease is None:
            self._cluster.create_lease(self.namespace, self.lease_name, self.holder.to_json(),
                                       self.duration_seconds)
        else:
            current = self._holder_of(lease)
            if self._expired(lease):
                self._cluster.transfer_lease(lease, self.holder.to_json())
            elif current.is_same_process(self.holder):
                self._cluster.renew_lease(lease)
            elif current.is_same_machine(self.holder) and not current.is_process_alive():
                self._cluster.transfer_lease(lease, self.holder.to_json())
            else:
                raise self._held_elsewhere(current)
        if self._schedule_id is None:
            self._schedule_id = self._renewal.schedule(self)
        logger.debug("Acquired lease %s/%s", self.namespace, self.lease_name)

    def try_acquire(self) -> bool:
        try:
            self.acquire()
        except LeaseAcquisitionError:
            return False
        return True

    def renew(self) -> None:
        lease = self._read()
        if lease is None:
            raise LeaseAcquisitionError(f"lease {self.lease_name} no longer exists")
        current = self._holder_of(lease)
        if not current.is_same_process(self.holder):
            raise self._held_elsewhere(current)
        self._cluster.renew_lease(lease)

    def try_renew(self) -> bool:
        try:
            self.renew()
        except SoloError as err:
            logger.debug("Lease renewal failed: %s", err)
            return False
        return True

    def release(self) -> None:
        """Stop renewing and delete the lease if this process holds it.

        Raises:
            LeaseRelinquishmentError: If another live process holds the lease.
        """
        self._renewal.cancel(self._schedule_id)
        self._schedule_id = None
        lease = self._read()
        if lease is None:
            return
        current = self._holder_of(lease)
        if current.is_same_process(self.holder) or self._expired(lease):
            self._cluster.delete_lease(self.namespace, self.lease_name)
            logger.debug("Released lease %s/%s", self.namespace, self.lease_name)
            return
        raise LeaseRelinquishmentError(
            f"lease already acquired by '{current.username}' on the '{current.hostname}' "
            f"machine (PID: '{current.process_id}')")

    def is_acquired(self) -> bool:
        lease = self._read()
        return (lease is not None and self._holder_of(lease).is_same_process(self.holder)
                and not self._expired(lease))

    def is_expired(self) -> bool:
        lease = self._read()
        return lease is None or self._expired(lease)


class LeaseManager:
    """Creates namespace leases and acquires them with bounded retries.

    Args:
        cluster: Cluster operations for lease CRUD.
        settings: Lease duration, attempt budget and retry delay.
    """

    def __init__(self, cluster: ClusterOps, settings: SoloSettings) -> None:
        self._cluster = cluster
        self._settings = settings
        self.renewal_service = LeaseRenewalService()

    def create(self, namespace: str) -> IntervalLease:
        return IntervalLease(self._cluster, self.renewal_service, namespace,
                             duration_seconds=self._settings.lease_duration)

    def acquire_with_retry(self, lease: IntervalLease, handle: TaskHandle | None = None) -> None:
        """Try to acquire ``lease`` up to ``lease_acquire_attempts`` times.

        Raises:
            LeaseAcquisitionError: When every attempt found the lease held.
        """
        max_attempts = self._settings.lease_acquire_attempts
        delay = self._settings.lease_retry_delay
        if delay is None:
            delay = lease.duration_seconds

        def _before(retry_state) -> None:
            if handle is not None:
                handle.title = f"Acquire lease - attempt {retry_state.attempt_number}/{max_attempts}"
            logger.debug("Acquire lease %s attempt %d/%d", lease.lease_name,
                         retry_state.attempt_number, max_attempts)

        retryer = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(delay),
            retry=retry_if_exception_type(LeaseAcquisitionError),
            before=_before,
        )
        try:
            retryer(lease.acquire)
        except RetryError as err:
            raise LeaseAcquisitionError(
                f"Failed to acquire lease, max attempts reached ({max_attempts}/{max_attempts}): "
                f"{err.last_attempt.exception()}") from err
