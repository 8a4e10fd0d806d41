"""HTTP implementation of the remote ledger interface."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

import requests

from activitygrid.backend import LedgerBackend
from activitygrid.exceptions import RemoteLedgerError
from activitygrid.models import BulkMutationResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30


@dataclass(frozen=True)
class HttpLedgerConfig:
    """Connection settings for the remote ledger API."""

    base_url: str
    api_token: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


class HttpLedgerBackend(LedgerBackend):
    """Talk to the remote ledger over its JSON HTTP API."""

    BULK_PATH = "/activities/bulk"
    LIST_PATH = "/activities"

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise ValueError("base_url is required")
        self.config = HttpLedgerConfig(
            base_url=base_url.strip().rstrip("/"),
            api_token=api_token or None,
            timeout_seconds=float(timeout),
        )
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token}"
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.config.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.config.timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise RemoteLedgerError(
                f"Request to remote ledger failed: {exc}",
                details={"url": url},
            ) from exc
        if not response.ok:
            raise RemoteLedgerError(
                f"Remote ledger returned HTTP {response.status_code}",
                details={"url": url, "status": response.status_code, "body": response.text},
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteLedgerError(
                "Remote ledger returned invalid JSON",
                details={"url": url, "status": response.status_code},
            ) from exc

    def bulk_mutate(self, request: dict[str, Any]) -> BulkMutationResult:
        logger.debug(
            f"Submitting bulk mutation: {len(request.get('creates', []))} creates, "
            f"{len(request.get('updates', []))} updates, "
            f"{len(request.get('deleteIds', []))} deletes"
        )
        payload = self._request("POST", self.BULK_PATH, json=request)
        if not isinstance(payload, dict):
            raise RemoteLedgerError("Unexpected bulk mutation response", details={"body": payload})
        result = BulkMutationResult.from_response(payload)
        if result.errors and result.persisted_nothing:
            messages = "; ".join(error.message for error in result.errors[:3] if error.message)
            raise RemoteLedgerError(
                f"Remote ledger rejected the batch: {messages}" if messages
                else "Remote ledger rejected the batch",
                details={"errors": payload.get("errors", [])},
            )
        return result

    def list_activities(self, account_id: str | None = None) -> list[dict[str, Any]]:
        params = {"accountId": account_id} if account_id else None
        payload = self._request("GET", self.LIST_PATH, params=params)
        if isinstance(payload, dict):
            payload = payload.get("data", payload.get("activities", []))
        if not isinstance(payload, list):
            raise RemoteLedgerError("Unexpected activity list response", details={"body": payload})
        return [record for record in payload if isinstance(record, dict)]
