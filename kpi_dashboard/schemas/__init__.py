"""Pydantic schemas exposed by the API."""

from .activity import ActivityUpdateRequest
from .kpi import (
    BulkValuesRequest,
    CategorySchema,
    CategoryWriteRequest,
    KPIDataUpdateRequest,
    KPISchema,
    KPIValueSchema,
    KPIValueWriteRequest,
    KPIWriteRequest,
)
from .transaction import TransactionSchema, TransactionUpdateRequest
from .whatsapp import SendBulkRequest

__all__ = [
    "ActivityUpdateRequest",
    "BulkValuesRequest",
    "CategorySchema",
    "CategoryWriteRequest",
    "KPIDataUpdateRequest",
    "KPISchema",
    "KPIValueSchema",
    "KPIValueWriteRequest",
    "KPIWriteRequest",
    "SendBulkRequest",
    "TransactionSchema",
    "TransactionUpdateRequest",
]
