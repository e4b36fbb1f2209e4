"""UI state and its reducer."""

from bookkeeper.state.store import (
    Action,
    AppState,
    Banner,
    BannerDismissed,
    BannerKind,
    ConnectivityChanged,
    NetworkError,
    RecordDeleted,
    RecordSaved,
    RecordsLoaded,
    SaveFailed,
    SyncCompleted,
    ValidationFailed,
    reduce,
)

__all__ = [
    "Action",
    "AppState",
    "Banner",
    "BannerDismissed",
    "BannerKind",
    "ConnectivityChanged",
    "NetworkError",
    "RecordDeleted",
    "RecordSaved",
    "RecordsLoaded",
    "SaveFailed",
    "SyncCompleted",
    "ValidationFailed",
    "reduce",
]
