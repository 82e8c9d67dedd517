from .user import User, ROLES
from .donor import Donor, GENDERS
from .hospital import Hospital
from .request import (
    Request,
    REQUEST_KINDS,
    ORGAN_TYPES,
    URGENCIES,
    REQUEST_STATUSES,
    ACTIVE_REQUEST_STATUSES,
    TERMINAL_REQUEST_STATUSES,
)
from .donation import Donation, DONATION_STATUSES, TERMINAL_DONATION_STATUSES
from .notification import Notification, NOTIFICATION_TYPES, RELATED_TYPES

__all__ = [
    "User",
    "Donor",
    "Hospital",
    "Request",
    "Donation",
    "Notification",
    "ROLES",
    "GENDERS",
    "REQUEST_KINDS",
    "ORGAN_TYPES",
    "URGENCIES",
    "REQUEST_STATUSES",
    "ACTIVE_REQUEST_STATUSES",
    "TERMINAL_REQUEST_STATUSES",
    "DONATION_STATUSES",
    "TERMINAL_DONATION_STATUSES",
    "NOTIFICATION_TYPES",
    "RELATED_TYPES",
]
