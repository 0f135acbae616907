"""Database model exports."""

from .activity import Activity, ActivityCompletion, ActivityType
from .kpi import KPI, PLATFORM_FIELDS, Category, KPIValue
from .transaction import DEVICE_NAMES, SUCCESS_STATUSES, Transaction, platform_name

__all__ = [
    "Activity",
    "ActivityCompletion",
    "ActivityType",
    "Category",
    "DEVICE_NAMES",
    "KPI",
    "KPIValue",
    "PLATFORM_FIELDS",
    "SUCCESS_STATUSES",
    "Transaction",
    "platform_name",
]
