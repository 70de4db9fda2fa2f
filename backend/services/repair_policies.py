"""
Customer-side rules for editing and deleting repair requests
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from domain.errors import DeleteGuardError
from domain.models import RepairRequest, RepairStatus, as_aware, utcnow
from services.repair_api_client import RepairApiClient

logger = logging.getLogger(__name__)

DELETE_CUTOFF = timedelta(days=3)
DELETE_CUTOFF_REASON = "Cannot delete within 3 days of appointment. Contact support for urgent cancellations."


@dataclass
class DeleteStatus:
    can_delete: bool
    reason: Optional[str] = None


def can_edit(repair: Optional[RepairRequest], now: Optional[datetime] = None) -> bool:
    # editable until the appointment, never once cancelled
    if repair is None or repair.scheduled_date_time is None:
        return False
    if repair.status == RepairStatus.CANCELLED:
        return False
    return as_aware(repair.scheduled_date_time) > as_aware(now or utcnow())


def get_delete_status(repair: Optional[RepairRequest], now: Optional[datetime] = None) -> DeleteStatus:
    if repair is None:
        return DeleteStatus(False, "Repair not found")

    if repair.scheduled_date_time is None:
        return DeleteStatus(True)

    cutoff = as_aware(now or utcnow()) + DELETE_CUTOFF
    if as_aware(repair.scheduled_date_time) <= cutoff:
        return DeleteStatus(False, DELETE_CUTOFF_REASON)

    return DeleteStatus(True)


async def guarded_delete(
    client: RepairApiClient, repair: RepairRequest, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Delete through the API only if the 3 day rule allows it"""
    status = get_delete_status(repair, now)
    if not status.can_delete:
        logger.info(f"Delete refused locally for repair {repair.id}: {status.reason}")
        raise DeleteGuardError(status.reason)
    return await client.delete_by_customer(repair.id)
