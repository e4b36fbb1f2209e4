"""
UI State

AppState is the single snapshot of what the UI shows. It only changes
through reduce(state, action), a pure function that returns a new state
and never mutates its input. The Streamlit app keeps the current state
in st.session_state and dispatches actions after each flow call.

A failed save keeps the record in memory and lists its id in
unsaved_ids; the warning banner stays until the user dismisses it, so
the masking is always visible.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from bookkeeper.models.base import Record, utc_now
from bookkeeper.models.business import Account, Transfer
from bookkeeper.models.catalog import Product, Service
from bookkeeper.models.documents import Bill, Invoice
from bookkeeper.models.legal import Client, ClientFile, ExtraFee, FileExpense
from bookkeeper.models.transaction import Transaction


# Collection name -> AppState attribute holding its records
RECORD_LISTS = {
    "transactions": "transactions",
    "products": "products",
    "services": "services",
    "invoices": "invoices",
    "bills": "bills",
    "accounts": "accounts",
    "transfers": "transfers",
    "clients": "clients",
    "client_files": "client_files",
    "file_expenses": "file_expenses",
    "extra_fees": "extra_fees",
}


class BannerKind(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Banner(BaseModel):
    """A dismissible message shown at the top of the page."""

    kind: BannerKind
    message: str
    retry_action: Optional[str] = Field(
        default=None,
        description="Name of the action the UI offers to retry"
    )


class AppState(BaseModel):
    transactions: list[Transaction] = Field(default_factory=list)
    products: list[Product] = Field(default_factory=list)
    services: list[Service] = Field(default_factory=list)
    invoices: list[Invoice] = Field(default_factory=list)
    bills: list[Bill] = Field(default_factory=list)
    accounts: list[Account] = Field(default_factory=list)
    transfers: list[Transfer] = Field(default_factory=list)
    clients: list[Client] = Field(default_factory=list)
    client_files: list[ClientFile] = Field(default_factory=list)
    file_expenses: list[FileExpense] = Field(default_factory=list)
    extra_fees: list[ExtraFee] = Field(default_factory=list)

    form_errors: dict[str, str] = Field(default_factory=dict)
    banner: Optional[Banner] = None
    unsaved_ids: list[str] = Field(default_factory=list)

    online: bool = True
    pending_sync: int = 0
    last_synced_at: Optional[datetime] = None

    def records(self, collection: str) -> list:
        return getattr(self, RECORD_LISTS[collection])

    def is_unsaved(self, record_id: Union[UUID, str]) -> bool:
        return str(record_id) in self.unsaved_ids

    def unsaved_records(self) -> list[tuple[str, Record]]:
        """(collection, record) for every record held in memory only."""
        return [
            (collection, record)
            for collection, attr in RECORD_LISTS.items()
            for record in getattr(self, attr)
            if str(record.id) in self.unsaved_ids
        ]


# =============================================================================
# Actions
# =============================================================================

class RecordsLoaded(BaseModel):
    """Fresh lists read from storage. Lists left as None are kept."""
    transactions: Optional[list[Transaction]] = None
    products: Optional[list[Product]] = None
    services: Optional[list[Service]] = None
    invoices: Optional[list[Invoice]] = None
    bills: Optional[list[Bill]] = None
    accounts: Optional[list[Account]] = None
    transfers: Optional[list[Transfer]] = None
    clients: Optional[list[Client]] = None
    client_files: Optional[list[ClientFile]] = None
    file_expenses: Optional[list[FileExpense]] = None
    extra_fees: Optional[list[ExtraFee]] = None


class RecordSaved(BaseModel):
    collection: str
    record: Record
    message: Optional[str] = None


class RecordDeleted(BaseModel):
    collection: str
    record_id: str


class SaveFailed(BaseModel):
    """Storage rejected a write; the record is kept in memory only."""
    collection: str
    record: Record
    error: str


class ValidationFailed(BaseModel):
    errors: dict[str, str]


class NetworkError(BaseModel):
    message: str
    retry_action: Optional[str] = None


class BannerDismissed(BaseModel):
    pass


class ConnectivityChanged(BaseModel):
    online: bool


class SyncCompleted(BaseModel):
    pending_sync: int
    failed: bool = False
    error: Optional[str] = None
    completed_at: datetime = Field(default_factory=utc_now)


Action = Union[
    RecordsLoaded,
    RecordSaved,
    RecordDeleted,
    SaveFailed,
    ValidationFailed,
    NetworkError,
    BannerDismissed,
    ConnectivityChanged,
    SyncCompleted,
]


# =============================================================================
# Reducer
# =============================================================================

def _upsert(records: list, record: Record) -> list:
    """New list with record replacing the one with the same id, or appended."""
    replaced = False
    result = []
    for existing in records:
        if existing.id == record.id:
            result.append(record)
            replaced = True
        else:
            result.append(existing)
    if not replaced:
        result.append(record)
    return result


def reduce(state: AppState, action: Action) -> AppState:
    """Return the state after applying action. state is left untouched."""
    if isinstance(action, RecordsLoaded):
        update = {
            attr: list(getattr(action, attr))
            for attr in RECORD_LISTS.values()
            if getattr(action, attr) is not None
        }
        return state.model_copy(update=update)

    if isinstance(action, RecordSaved):
        attr = RECORD_LISTS[action.collection]
        record_id = str(action.record.id)
        return state.model_copy(update={
            attr: _upsert(getattr(state, attr), action.record),
            "form_errors": {},
            "unsaved_ids": [i for i in state.unsaved_ids if i != record_id],
            "banner": Banner(kind=BannerKind.SUCCESS, message=action.message)
            if action.message else state.banner,
        })

    if isinstance(action, RecordDeleted):
        attr = RECORD_LISTS[action.collection]
        return state.model_copy(update={
            attr: [r for r in getattr(state, attr) if str(r.id) != action.record_id],
            "unsaved_ids": [i for i in state.unsaved_ids if i != action.record_id],
        })

    if isinstance(action, SaveFailed):
        attr = RECORD_LISTS[action.collection]
        record_id = str(action.record.id)
        unsaved = list(state.unsaved_ids)
        if record_id not in unsaved:
            unsaved.append(record_id)
        return state.model_copy(update={
            attr: _upsert(getattr(state, attr), action.record),
            "form_errors": {},
            "unsaved_ids": unsaved,
            "banner": Banner(
                kind=BannerKind.WARNING,
                message=(
                    "Could not save to local storage. The record is kept in memory "
                    f"only and will be lost when the app closes. ({action.error})"
                ),
                retry_action="retry_save",
            ),
        })

    if isinstance(action, ValidationFailed):
        return state.model_copy(update={"form_errors": dict(action.errors)})

    if isinstance(action, NetworkError):
        return state.model_copy(update={
            "banner": Banner(
                kind=BannerKind.ERROR,
                message=action.message,
                retry_action=action.retry_action,
            ),
        })

    if isinstance(action, BannerDismissed):
        return state.model_copy(update={"banner": None})

    if isinstance(action, ConnectivityChanged):
        return state.model_copy(update={"online": action.online})

    if isinstance(action, SyncCompleted):
        update = {"pending_sync": action.pending_sync}
        if action.failed:
            update["banner"] = Banner(
                kind=BannerKind.ERROR,
                message=f"Sync failed: {action.error or 'unknown error'}",
                retry_action="sync_now",
            )
        else:
            update["last_synced_at"] = action.completed_at
        return state.model_copy(update=update)

    raise TypeError(f"Unknown action: {type(action).__name__}")
