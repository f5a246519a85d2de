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
Tests for namespace leases and bounded lease acquisition.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from solo_manager.errors import LeaseAcquisitionError, LeaseRelinquishmentError
from solo_manager.kube import format_lease_time
from solo_manager.lease import IntervalLease, LeaseHolder, LeaseManager


def _lease_object(holder: LeaseHolder, renewed_ago: float = 0, duration: int = 20) -> dict:
    renewed = format_lease_time(datetime.now(timezone.utc) - timedelta(seconds=renewed_ago))
    return {
        "metadata": {"name": "solo-e2e", "namespace": "solo-e2e"},
        "spec": {
            "holderIdentity": holder.to_json(),
            "leaseDurationSeconds": duration,
            "acquireTime": renewed,
            "renewTime": renewed,
        },
    }


@pytest.fixture
def me():
    return LeaseHolder("alice", "workstation", 4242)


@pytest.fixture
def other_user():
    return LeaseHolder("bob", "laptop", 1001)


@pytest.fixture
def renewal_service():
    """Renewal service mock so no timer threads are started."""
    service = MagicMock(name="renewal_service")
    service.schedule.return_value = 1
    return service


class TestIntervalLease:

    def test_acquire_creates_missing_lease(self, me, renewal_service):
        cluster = MagicMock()
        cluster.read_lease.return_value = None
        lease = IntervalLease(cluster, renewal_service, "solo-e2e", holder=me)

        lease.acquire()

        cluster.create_lease.assert_called_once_with("solo-e2e", "solo-e2e", me.to_json(), 20)
        renewal_service.schedule.assert_called_once_with(lease)

    def test_acquire_held_by_other_user_fails(self, me, other_user, renewal_service):
        cluster = MagicMock()
        cluster.read_lease.return_value = _lease_object(other_user)
        lease = IntervalLease(cluster, renewal_service, "solo-e2e", holder=me)

        with pytest.raises(LeaseAcquisitionError, match="lease already acquired by 'bob' on the 'laptop'"):
            lease.acquire()
        renewal_service.schedule.assert_not_called()

    def test_expired_lease_is_taken_over(self, me, other_user, renewal_service):
        cluster = MagicMock()
        existing = _lease_object(other_user, renewed_ago=60)
        cluster.read_lease.return_value = existing
        lease = IntervalLease(cluster, renewal_service, "solo-e2e", holder=me)

        lease.acquire()

        cluster.transfer_lease.assert_called_once_with(existing, me.to_json())

    def test_own_lease_is_renewed(self, me, renewal_service):
        cluster = MagicMock()
        existing = _lease_object(me)
        cluster.read_lease.return_value = existing
        lease = IntervalLease(cluster, renewal_service, "solo-e2e", holder=me)

        lease.acquire()

        cluster.renew_lease.assert_called_once_with(existing)

    def test_release_deletes_own_lease(self, me, renewal_service):
        cluster = MagicMock()
        cluster.read_lease.return_value = _lease_object(me)
        lease = IntervalLease(cluster, renewal_service, "solo-e2e", holder=me)

        lease.release()

        cluster.delete_lease.assert_called_once_with("solo-e2e", "solo-e2e")

    def test_release_of_foreign_lease_fails(self, me, other_user, renewal_service):
        cluster = MagicMock()
        cluster.read_lease.return_value = _lease_object(other_user)
        lease = IntervalLease(cluster, renewal_service, "solo-e2e", holder=me)

        with pytest.raises(LeaseRelinquishmentError):
            lease.release()
        cluster.delete_lease.assert_not_called()


class TestLeaseHolder:

    def test_json_round_trip(self, me):
        assert LeaseHolder.from_json(me.to_json()) == me

    def test_same_machine_is_not_same_process(self, me):
        sibling = LeaseHolder("alice", "workstation", 4243)
        assert me.is_same_machine(sibling)
        assert not me.is_same_process(sibling)


class TestAcquireWithRetry:

    def test_attempts_exactly_the_configured_number_of_times(self, settings, me, other_user):
        cluster = MagicMock()
        cluster.read_lease.return_value = _lease_object(other_user)
        manager = LeaseManager(cluster, settings)
        lease = IntervalLease(cluster, manager.renewal_service, "solo-e2e", holder=me)
        lease.acquire = MagicMock(wraps=lease.acquire)

        with pytest.raises(LeaseAcquisitionError, match=r"max attempts reached \(10/10\)"):
            manager.acquire_with_retry(lease)

        assert settings.lease_acquire_attempts == 10
        assert lease.acquire.call_count == 10
        cluster.create_lease.assert_not_called()

    def test_handle_title_shows_attempts(self, settings, me):
        cluster = MagicMock()
        cluster.read_lease.return_value = None
        manager = LeaseManager(cluster, settings)
        lease = IntervalLease(cluster, MagicMock(), "solo-e2e", holder=me)
        handle = MagicMock(title="Acquire lease")

        manager.acquire_with_retry(lease, handle)

        assert handle.title == "Acquire lease - attempt 1/10"

    def test_create_uses_configured_duration(self, settings):
        manager = LeaseManager(MagicMock(), settings.model_copy(update={"lease_duration": 45}))
        assert manager.create("solo-e2e").duration_seconds == 45
