"""Lead-level statistics shown next to the pipeline panel."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any

from pydantic import BaseModel


class ValidationCounts(BaseModel):
    valid: int = 0
    invalid: int = 0
    email_valid: int = 0
    email_invalid: int = 0


class SalesforceCategory(str, Enum):
    EXISTING_CUSTOMER = "existing_customer"
    EXISTING_OPPORTUNITY = "existing_opportunity"
    EXISTING_CONTACT = "existing_contact"
    EXISTING_ACCOUNT = "existing_account"
    EXISTING_LEAD = "existing_lead"
    NET_NEW = "net_new"
    FAILED = "failed"
    PENDING = "pending"


# Match flags checked in order; the first set flag wins
_MATCH_FLAGS = (
    ("sf_existing_customer", SalesforceCategory.EXISTING_CUSTOMER),
    ("sf_existing_opportunity", SalesforceCategory.EXISTING_OPPORTUNITY),
    ("sf_existing_contact", SalesforceCategory.EXISTING_CONTACT),
    ("sf_existing_account", SalesforceCategory.EXISTING_ACCOUNT),
    ("sf_existing_lead", SalesforceCategory.EXISTING_LEAD),
)

SALESFORCE_COLUMNS = ",".join([flag for flag, _ in _MATCH_FLAGS] + ["salesforce_status"])


def classify_salesforce_status(lead: dict[str, Any]) -> SalesforceCategory:
    """Classify one lead row by its Salesforce check outcome."""
    if lead.get("salesforce_status") == "failed":
        return SalesforceCategory.FAILED
    for flag, category in _MATCH_FLAGS:
        if lead.get(flag):
            return category
    if lead.get("salesforce_status") == "completed":
        return SalesforceCategory.NET_NEW
    return SalesforceCategory.PENDING


class SalesforceStatusCounts(BaseModel):
    existing_customer: int = 0
    existing_opportunity: int = 0
    existing_contact: int = 0
    existing_account: int = 0
    existing_lead: int = 0
    net_new: int = 0
    failed: int = 0
    pending: int = 0

    @classmethod
    def from_leads(cls, leads: Iterable[dict[str, Any]]) -> SalesforceStatusCounts:
        counts = cls()
        for lead in leads:
            field = classify_salesforce_status(lead).value
            setattr(counts, field, getattr(counts, field) + 1)
        return counts

    @property
    def total(self) -> int:
        return sum(self.model_dump().values())


class LeadStats(BaseModel):
    event_id: str
    lead_count: int = 0
    validation: ValidationCounts
    salesforce: SalesforceStatusCounts
