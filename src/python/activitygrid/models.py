"""Domain models for local activity editing and bulk mutation results."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
import datetime as dt
from decimal import Decimal
from typing import Any, Mapping
import uuid

from activitygrid.conversions import (
    is_blank,
    parse_decimal_input,
    parse_timestamp,
)
from activitygrid.currency import normalize_cash_asset_key
from activitygrid.schema import (
    BUY,
    FEE_DECIMAL_PLACES,
    QUANTITY_DECIMAL_PLACES,
    TEMP_ID_PREFIX,
)


def generate_temp_id() -> str:
    """Mint a temporary identifier for a row that has not been persisted."""
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def is_temp_id(value: str | None) -> bool:
    return bool(value) and str(value).startswith(TEMP_ID_PREFIX)


@dataclass(frozen=True)
class AccountRecord:
    """Reference record for an account the grid can assign rows to.

    Attributes:
        id: Remote identifier of the account
        name: Display name of the account
        currency: Currency code for the account
        is_active: Inactive accounts are not used as draft defaults
    """
    id: str
    name: str
    currency: str
    is_active: bool = True


@dataclass(frozen=True)
class BaseTransaction:
    """Fields shared by draft and persisted rows."""
    id: str
    account_id: str = ""
    account_name: str = ""
    account_currency: str | None = None
    activity_type: str = BUY
    date: dt.datetime | None = None
    asset_symbol: str = ""
    asset_id: str = ""
    exchange_mic: str | None = None
    quantity: Decimal | None = None
    unit_price: Decimal | None = None
    amount: Decimal | None = None
    fee: Decimal | None = None
    fx_rate: Decimal | None = None
    currency: str | None = None
    comment: str = ""
    subtype: str | None = None
    is_external: bool | None = None
    metadata: Mapping[str, Any] | None = None
    needs_review: bool = False
    is_user_modified: bool = False
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


@dataclass(frozen=True)
class DraftTransaction(BaseTransaction):
    """Row created in this editing session and never sent to the remote ledger."""

    def __post_init__(self) -> None:
        if not is_temp_id(self.id):
            raise ValueError(f"Draft id must start with {TEMP_ID_PREFIX!r}: {self.id!r}")

    @property
    def is_new(self) -> bool:
        return True


@dataclass(frozen=True)
class PersistedTransaction(BaseTransaction):
    """Row materialized from the remote ledger.

    ``original_asset_id`` and ``original_asset_symbol`` hold the asset identity
    as last persisted; update payloads compare against them.
    """
    original_asset_id: str = ""
    original_asset_symbol: str = ""

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValueError("Persisted id is required")
        if is_temp_id(self.id):
            raise ValueError(f"Persisted id must not be temporary: {self.id!r}")

    @property
    def is_new(self) -> bool:
        return False


LocalTransaction = DraftTransaction | PersistedTransaction

_BASE_FIELD_NAMES = tuple(f.name for f in fields(BaseTransaction))


def _base_values(transaction: BaseTransaction) -> dict[str, Any]:
    return {name: getattr(transaction, name) for name in _BASE_FIELD_NAMES}


def to_draft(
    transaction: BaseTransaction, draft_id: str | None = None, **overrides: Any
) -> DraftTransaction:
    """Copy a row into a new draft with a fresh temporary id."""
    values = _base_values(transaction)
    values.update(overrides)
    values["id"] = draft_id or generate_temp_id()
    return DraftTransaction(**values)


def to_persisted(draft: BaseTransaction, persisted_id: str) -> PersistedTransaction:
    """Promote a draft to a persisted row under its server-issued id."""
    values = _base_values(draft)
    values["id"] = persisted_id
    return PersistedTransaction(
        **values,
        original_asset_id=draft.asset_id,
        original_asset_symbol=draft.asset_symbol,
    )


def _optional_decimal(value: object, places: int) -> Decimal | None:
    if is_blank(value):
        return None
    return parse_decimal_input(value, places)  # type: ignore[arg-type]


def _optional_timestamp(value: object) -> dt.datetime | None:
    if is_blank(value):
        return None
    return parse_timestamp(value)  # type: ignore[arg-type]


def transaction_from_record(record: Mapping[str, Any]) -> LocalTransaction:
    """Materialize a remote activity record into a local row.

    Records without a usable id become drafts under a temporary id. Legacy
    cash asset keys are normalized to the canonical ``CASH:{CCY}`` form.
    """
    asset_id = normalize_cash_asset_key(str(record.get("assetId") or ""))
    asset_symbol = normalize_cash_asset_key(str(record.get("assetSymbol") or ""))
    values: dict[str, Any] = {
        "account_id": str(record.get("accountId") or ""),
        "account_name": str(record.get("accountName") or ""),
        "account_currency": record.get("accountCurrency") or None,
        "activity_type": str(record.get("activityType") or ""),
        "date": _optional_timestamp(record.get("date") or record.get("activityDate")),
        "asset_symbol": asset_symbol,
        "asset_id": asset_id,
        "exchange_mic": record.get("exchangeMic") or None,
        "quantity": _optional_decimal(record.get("quantity"), QUANTITY_DECIMAL_PLACES),
        "unit_price": _optional_decimal(record.get("unitPrice"), QUANTITY_DECIMAL_PLACES),
        "amount": _optional_decimal(record.get("amount"), QUANTITY_DECIMAL_PLACES),
        "fee": _optional_decimal(record.get("fee"), FEE_DECIMAL_PLACES),
        "fx_rate": _optional_decimal(record.get("fxRate"), FEE_DECIMAL_PLACES),
        "currency": record.get("currency") or None,
        "comment": str(record.get("comment") or record.get("notes") or ""),
        "subtype": record.get("subtype") or None,
        "is_external": record.get("isExternal"),
        "metadata": record.get("metadata") if isinstance(record.get("metadata"), Mapping) else None,
        "needs_review": bool(record.get("needsReview", False)),
        "is_user_modified": bool(record.get("isUserModified", False)),
        "created_at": _optional_timestamp(record.get("createdAt")),
        "updated_at": _optional_timestamp(record.get("updatedAt")),
    }
    record_id = str(record.get("id") or "").strip()
    if not record_id or is_temp_id(record_id):
        return DraftTransaction(id=generate_temp_id(), **values)
    return PersistedTransaction(
        id=record_id,
        original_asset_id=asset_id,
        original_asset_symbol=asset_symbol,
        **values,
    )


@dataclass(frozen=True)
class ValidationIssue:
    """Single field-level problem found on a dirty row."""
    transaction_id: str
    field: str
    message: str


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of the pre-save validation gate."""
    is_valid: bool
    errors: list[ValidationIssue]


@dataclass(frozen=True)
class ChangeSummary:
    """Counts of pending changes, derived from the ledger tracking sets."""
    new_count: int = 0
    updated_count: int = 0
    deleted_count: int = 0

    @property
    def total_pending_changes(self) -> int:
        return self.new_count + self.updated_count + self.deleted_count


@dataclass(frozen=True)
class ChangeState:
    """Copy of the ledger tracking sets at a point in time."""
    dirty_ids: frozenset[str]
    pending_delete_ids: frozenset[str]


@dataclass(frozen=True)
class SavePayload:
    """Compiled bulk mutation request."""
    creates: list[dict[str, Any]]
    updates: list[dict[str, Any]]
    delete_ids: list[str]

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.delete_ids)

    def to_request(self) -> dict[str, Any]:
        """Return the camelCase wire request."""
        return {
            "creates": [dict(item) for item in self.creates],
            "updates": [dict(item) for item in self.updates],
            "deleteIds": list(self.delete_ids),
        }


@dataclass(frozen=True)
class IdMapping:
    """Temporary client id mapped to the persisted activity id."""
    temp_id: str
    activity_id: str


@dataclass(frozen=True)
class BulkMutationError:
    """Error reported by the remote ledger for one entry of a batch."""
    id: str | None
    action: str
    message: str


@dataclass(frozen=True)
class BulkMutationResult:
    """Response of the remote bulk mutation endpoint."""
    created: list[dict[str, Any]] = field(default_factory=list)
    updated: list[dict[str, Any]] = field(default_factory=list)
    deleted: list[dict[str, Any]] = field(default_factory=list)
    created_mappings: list[IdMapping] = field(default_factory=list)
    errors: list[BulkMutationError] = field(default_factory=list)

    @property
    def persisted_nothing(self) -> bool:
        return not (self.created or self.updated or self.deleted or self.created_mappings)

    @classmethod
    def from_response(cls, payload: Mapping[str, Any]) -> "BulkMutationResult":
        """Parse a camelCase response body, skipping incomplete mappings."""
        mappings = []
        for item in payload.get("createdMappings") or []:
            temp_id = item.get("tempId")
            activity_id = item.get("activityId")
            if temp_id and activity_id:
                mappings.append(IdMapping(temp_id=str(temp_id), activity_id=str(activity_id)))
        errors = [
            BulkMutationError(
                id=str(item["id"]) if item.get("id") is not None else None,
                action=str(item.get("action") or ""),
                message=str(item.get("message") or ""),
            )
            for item in payload.get("errors") or []
        ]
        return cls(
            created=list(payload.get("created") or []),
            updated=list(payload.get("updated") or []),
            deleted=list(payload.get("deleted") or []),
            created_mappings=mappings,
            errors=errors,
        )


SAVE_SUCCESS = "success"
SAVE_NO_CHANGES = "no_changes"
SAVE_VALIDATION_FAILED = "validation_failed"
SAVE_REMOTE_FAILED = "remote_failed"


@dataclass(frozen=True)
class SaveOutcome:
    """Result of one save attempt."""
    status: str
    message: str = ""
    issues: list[ValidationIssue] = field(default_factory=list)
    result: BulkMutationResult | None = None
    payload: SavePayload | None = None

    @property
    def ok(self) -> bool:
        return self.status in (SAVE_SUCCESS, SAVE_NO_CHANGES)


@dataclass(frozen=True)
class EditOperation:
    """Single scripted grid edit for batch workflows.

    Attributes:
        operation: One of add, update, duplicate or delete
        id: Target row id; unused for add
        parameters: Field values to apply, keyed by grid field name
    """
    operation: str
    id: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EditBatchResult:
    """Result of applying a list of scripted edits to the ledger."""
    successful: list[tuple[EditOperation, str]]
    failed: list[tuple[EditOperation, Exception]]
