from datetime import datetime
from typing import NamedTuple, Optional

from lifelink.config import Settings, settings
from lifelink.models import Donor, Request
from lifelink.utils.blood import is_compatible
from lifelink.utils.time import as_utc_naive, utcnow


class Eligibility(NamedTuple):
    eligible: bool
    reason: str


def days_since(moment: datetime, now: Optional[datetime] = None) -> int:
    """Whole days elapsed since *moment* (floored). Aware values are taken as UTC."""
    return (as_utc_naive(now or utcnow()) - as_utc_naive(moment)).days


def evaluate(
    donor: Donor,
    request: Request,
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> Eligibility:
    """Decide whether *donor* may donate against *request* right now.

    Rules are checked in order and the first failure wins:

    * the donor must be available;
    * for blood requests only: a blood type must be on file, it must be
      compatible with the requested type, and at least
      ``MIN_DONATION_INTERVAL_DAYS`` whole days must have passed since the
      last donation.

    Organ requests have no rule beyond availability.
    """
    cfg = cfg or settings

    if not donor.is_available:
        return Eligibility(False, "Donor is not currently available")

    if request.kind == "blood":
        if not donor.blood_type:
            return Eligibility(False, "Donor has not provided blood type information")

        if not is_compatible(donor.blood_type, request.blood_type):
            return Eligibility(
                False,
                f"Donor blood type {donor.blood_type} is not compatible with request for {request.blood_type}",
            )

        if donor.last_donation_date is not None:
            elapsed = days_since(donor.last_donation_date, now)
            if elapsed < cfg.MIN_DONATION_INTERVAL_DAYS:
                return Eligibility(
                    False,
                    f"Must wait {cfg.MIN_DONATION_INTERVAL_DAYS - elapsed} more days before donating again",
                )

    return Eligibility(True, "Donor is eligible")
