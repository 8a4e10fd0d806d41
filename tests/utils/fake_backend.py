"""In-memory ledger backend for integration tests."""

from __future__ import annotations

import copy
from typing import Any

from activitygrid.backend import LedgerBackend
from activitygrid.exceptions import RemoteLedgerError
from activitygrid.models import BulkMutationResult


class FakeLedgerBackend(LedgerBackend):
    """Store activity records in memory and apply bulk requests to them.

    ``fail_with`` makes the next bulk call raise; ``reject_ids`` makes the
    listed entries come back in ``errors`` instead of being applied.
    """

    def __init__(self, records: list[dict[str, Any]] | None = None) -> None:
        self.records: dict[str, dict[str, Any]] = {
            record["id"]: copy.deepcopy(record) for record in records or []
        }
        self.requests: list[dict[str, Any]] = []
        self.fail_with: Exception | None = None
        self.reject_ids: set[str] = set()
        self.omit_mapping_ids: set[str] = set()
        self.on_submit = None
        self._next_id = 100

    def _mint_id(self) -> str:
        self._next_id += 1
        return f"real-{self._next_id}"

    def list_activities(self, account_id: str | None = None) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(record)
            for record in self.records.values()
            if account_id is None or record.get("accountId") == account_id
        ]

    def bulk_mutate(self, request: dict[str, Any]) -> BulkMutationResult:
        self.requests.append(copy.deepcopy(request))
        if self.on_submit is not None:
            self.on_submit(request)
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise error

        response: dict[str, Any] = {
            "created": [],
            "updated": [],
            "deleted": [],
            "createdMappings": [],
            "errors": [],
        }
        for entry in request.get("creates", []):
            if entry["id"] in self.reject_ids:
                response["errors"].append(
                    {"id": entry["id"], "action": "create", "message": "Rejected"}
                )
                continue
            activity_id = self._mint_id()
            record = {**entry, "id": activity_id}
            self.records[activity_id] = record
            response["created"].append(record)
            if entry["id"] not in self.omit_mapping_ids:
                response["createdMappings"].append(
                    {"tempId": entry["id"], "activityId": activity_id}
                )
        for entry in request.get("updates", []):
            if entry["id"] in self.reject_ids or entry["id"] not in self.records:
                response["errors"].append(
                    {"id": entry["id"], "action": "update", "message": "Rejected"}
                )
                continue
            self.records[entry["id"]].update(entry)
            response["updated"].append(copy.deepcopy(self.records[entry["id"]]))
        for activity_id in request.get("deleteIds", []):
            if activity_id in self.reject_ids or activity_id not in self.records:
                response["errors"].append(
                    {"id": activity_id, "action": "delete", "message": "Rejected"}
                )
                continue
            response["deleted"].append(self.records.pop(activity_id))
        return BulkMutationResult.from_response(response)


class TransportFailureBackend(FakeLedgerBackend):
    """Backend whose bulk call always fails at the transport level."""

    def bulk_mutate(self, request: dict[str, Any]) -> BulkMutationResult:
        self.requests.append(copy.deepcopy(request))
        raise RemoteLedgerError("Connection refused", details={"url": "http://ledger.test"})
