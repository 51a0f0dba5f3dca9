"""Read-only access to events and their lead records."""

from __future__ import annotations

import asyncio
import logging

from leadflow.leads.models import (
    SALESFORCE_COLUMNS,
    LeadStats,
    SalesforceStatusCounts,
    ValidationCounts,
)
from leadflow.pipeline.models import Event
from leadflow.services.supabase import SupabaseClient

logger = logging.getLogger(__name__)


class LeadsRepository:
    def __init__(
        self,
        client: SupabaseClient,
        events_table: str = "events",
        leads_table: str = "event_leads",
    ):
        self.client = client
        self.events_table = events_table
        self.leads_table = leads_table

    async def get_event(self, event_id: str) -> Event | None:
        """Fetch an event with its embedded lead count."""
        row = await self.client.select_one(
            self.events_table,
            filters={"id": f"eq.{event_id}"},
            columns=f"*,{self.leads_table}(count)",
        )
        if row is None:
            logger.info(f"Event not found: {event_id}")
            return None
        if self.leads_table != "event_leads" and self.leads_table in row:
            row = {**row, "event_leads": row.pop(self.leads_table)}
        return Event.from_row(row)

    async def count_leads(self, event_id: str, **filters: str) -> int:
        """Exact lead count for an event, optionally filtered by column equality."""
        params = {"event_id": f"eq.{event_id}"}
        params.update({column: f"eq.{value}" for column, value in filters.items()})
        return await self.client.count(self.leads_table, params)

    async def validation_counts(self, event_id: str) -> ValidationCounts:
        valid, invalid, email_valid, email_invalid = await asyncio.gather(
            self.count_leads(event_id, validation_status="completed"),
            self.count_leads(event_id, validation_status="failed"),
            self.count_leads(event_id, email_validation_status="valid"),
            self.count_leads(event_id, email_validation_status="invalid"),
        )
        return ValidationCounts(
            valid=valid,
            invalid=invalid,
            email_valid=email_valid,
            email_invalid=email_invalid,
        )

    async def salesforce_status_counts(self, event_id: str) -> SalesforceStatusCounts:
        rows = await self.client.select(
            self.leads_table,
            filters={"event_id": f"eq.{event_id}"},
            columns=SALESFORCE_COLUMNS,
        )
        return SalesforceStatusCounts.from_leads(rows)

    async def lead_stats(self, event_id: str) -> LeadStats:
        lead_count, validation, salesforce = await asyncio.gather(
            self.count_leads(event_id),
            self.validation_counts(event_id),
            self.salesforce_status_counts(event_id),
        )
        return LeadStats(
            event_id=event_id,
            lead_count=lead_count,
            validation=validation,
            salesforce=salesforce,
        )
