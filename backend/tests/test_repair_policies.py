from datetime import timedelta

import pytest

from domain.errors import DeleteGuardError
from domain.models import RepairRequest
from services.repair_policies import DELETE_CUTOFF_REASON, can_edit, get_delete_status, guarded_delete

from conftest import NOW, make_repair


def repair_at(offset, status="pending"):
    scheduled = NOW + offset if offset is not None else None
    return RepairRequest.model_validate(make_repair("r1", scheduled=scheduled, status=status))


@pytest.mark.parametrize(
    "offset, allowed",
    [
        (timedelta(days=2), False),
        (timedelta(days=3), False),
        (timedelta(days=3, minutes=1), True),
        (timedelta(days=-1), False),
        (None, True),
    ],
)
def test_delete_cutoff(offset, allowed):
    status = get_delete_status(repair_at(offset), NOW)
    assert status.can_delete is allowed
    if not allowed:
        assert status.reason == DELETE_CUTOFF_REASON


def test_missing_repair_cannot_be_deleted():
    assert get_delete_status(None, NOW).can_delete is False


def test_naive_schedule_is_treated_as_utc():
    repair = repair_at(timedelta(days=2))
    repair.scheduled_date_time = repair.scheduled_date_time.replace(tzinfo=None)
    assert get_delete_status(repair, NOW).can_delete is False


def test_can_edit():
    assert can_edit(repair_at(timedelta(hours=1)), NOW)
    assert not can_edit(repair_at(timedelta(hours=-1)), NOW)
    assert not can_edit(repair_at(timedelta(days=5), status="cancelled"), NOW)


async def test_refused_delete_never_reaches_api(api_client, fake_api):
    fake_api.add_repair(make_repair("r1"))

    with pytest.raises(DeleteGuardError) as exc:
        await guarded_delete(api_client, repair_at(timedelta(days=1)), NOW)

    assert exc.value.message == DELETE_CUTOFF_REASON
    assert fake_api.requests == []


async def test_allowed_delete_goes_through(api_client, fake_api):
    fake_api.add_repair(make_repair("r1"))

    response = await guarded_delete(api_client, repair_at(timedelta(days=10)), NOW)

    assert response["success"] is True
    assert fake_api.paths("DELETE") == ["/api/boat-repairs/r1/customer-delete"]
