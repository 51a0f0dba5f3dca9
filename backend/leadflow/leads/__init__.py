"""Event and lead statistics."""

from .models import (
    LeadStats,
    SalesforceCategory,
    SalesforceStatusCounts,
    ValidationCounts,
    classify_salesforce_status,
)
from .repository import LeadsRepository

__all__ = [
    "LeadStats",
    "SalesforceCategory",
    "SalesforceStatusCounts",
    "ValidationCounts",
    "classify_salesforce_status",
    "LeadsRepository",
]
