"""In-memory stand-in for the Supabase REST and function APIs."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

BASE_URL = "https://project.supabase.test"
T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def job_row(
    stage: str,
    status: str,
    *,
    id: str | None = None,
    event_id: str = "evt-1",
    total: int = 0,
    processed: int = 0,
    failed: int = 0,
    minutes: int = 0,
    error_message: str | None = None,
) -> dict[str, Any]:
    """A lead_processing_jobs row as PostgREST returns it."""
    created = T0 + timedelta(minutes=minutes)
    return {
        "id": id or f"{stage}-{status}-{minutes}",
        "event_id": event_id,
        "stage": stage,
        "status": status,
        "total_leads": total,
        "processed_leads": processed,
        "failed_leads": failed,
        "error_message": error_message,
        "started_at": None,
        "completed_at": None,
        "created_at": created.isoformat(),
        "updated_at": created.isoformat(),
    }


def _matches(row: dict[str, Any], params: httpx.QueryParams) -> bool:
    for key, value in params.multi_items():
        if key in ("select", "order", "limit"):
            continue
        if value.startswith("eq.") and str(row.get(key)) != value[3:]:
            return False
    return True


class FakeSupabase:
    """Routes PostgREST reads and function calls to in-memory tables."""

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {
            "lead_processing_jobs": [],
            "events": [],
            "event_leads": [],
        }
        self.function_responses: dict[str, Any] = {}
        self.calls: list[httpx.Request] = []
        self.fail_reads = False
        # Replaces every REST reply when set, e.g. a gateway error page
        self.read_reply: httpx.Response | None = None

    # Test helpers

    def add_job(self, row: dict[str, Any]) -> None:
        self.tables["lead_processing_jobs"].append(row)

    def add_event(self, event_id: str = "evt-1", name: str = "Spring Expo") -> None:
        self.tables["events"].append({"id": event_id, "name": name})

    def add_leads(self, rows: list[dict[str, Any]], event_id: str = "evt-1") -> None:
        for i, row in enumerate(rows):
            self.tables["event_leads"].append({"id": f"lead-{i}", "event_id": event_id, **row})

    def on_function(self, name: str, response: Any) -> None:
        """Set a function's reply: a dict, an httpx.Response, or an exception."""
        self.function_responses[name] = response

    def function_calls(self, name: str | None = None) -> list[httpx.Request]:
        return [
            call
            for call in self.calls
            if "/functions/v1/" in call.url.path
            and (name is None or call.url.path.endswith(f"/{name}"))
        ]

    # Transport

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path

        if path.startswith("/functions/v1/"):
            return self._function(request, path.rsplit("/", 1)[1])

        if path.startswith("/rest/v1/"):
            if self.fail_reads:
                return httpx.Response(503, json={"message": "upstream unavailable"})
            if self.read_reply is not None:
                return self.read_reply
            return self._rest(request, path.rsplit("/", 1)[1])

        return httpx.Response(404, json={"message": "no route"})

    def _function(self, request: httpx.Request, name: str) -> httpx.Response:
        reply = self.function_responses.get(name, {"success": True, "message": "ok"})
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    def _rest(self, request: httpx.Request, table: str) -> httpx.Response:
        if table not in self.tables:
            return httpx.Response(404, json={"message": f"relation {table} does not exist"})

        params = request.url.params
        rows = [row for row in self.tables[table] if _matches(row, params)]

        if request.method == "HEAD":
            total = len(rows)
            content_range = f"0-{total - 1}/{total}" if total else "*/0"
            return httpx.Response(200, headers={"content-range": content_range})

        order = params.get("order")
        if order:
            column, _, direction = order.partition(".")
            rows = sorted(rows, key=lambda r: r.get(column) or "", reverse=direction == "desc")
        limit = params.get("limit")
        if limit:
            rows = rows[: int(limit)]

        if table == "events" and "event_leads(count)" in params.get("select", ""):
            rows = [
                {
                    **row,
                    "event_leads": [
                        {
                            "count": sum(
                                1
                                for lead in self.tables["event_leads"]
                                if lead["event_id"] == row["id"]
                            )
                        }
                    ],
                }
                for row in rows
            ]

        return httpx.Response(
            200, content=json.dumps(rows), headers={"content-type": "application/json"}
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)
