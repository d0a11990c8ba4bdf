"""Mapping between local request status and GitHub state + labels.

GitHub only knows ``open``/``closed``, locally there are four statuses. The
``status-<value>`` label carries the exact local status across that boundary,
so it always wins over the raw state when reading back.
"""

from typing import Iterable, List, Optional, Set

from devsync.models.development_request import RequestStatus, RequestType

STATE_OPEN = "open"
STATE_CLOSED = "closed"

STATUS_LABEL_PREFIX = "status-"
PRIORITY_LABEL_PREFIX = "priority-"

LOCAL_STATUSES = tuple(s.value for s in RequestStatus)

# Bare tokens written by older versions, checked in this order.
_LEGACY_STATUS_TOKENS = ("in_progress", "done", "cancelled", "pending")

# Legacy storage values still accepted as input.
_STATUS_ALIASES = {
    "open": RequestStatus.PENDING.value,
    "closed": RequestStatus.DONE.value,
}

_TYPE_LABELS = {
    RequestType.BUG.value: "bug",
    RequestType.FEATURE.value: "enhancement",
}


def normalize_status(value: str) -> str:
    """Return a local status for ``value``, accepting legacy aliases."""
    raw = (value or "").strip().lower()
    if raw in LOCAL_STATUSES:
        return raw
    if raw in _STATUS_ALIASES:
        return _STATUS_ALIASES[raw]
    raise ValueError(f"Unknown status: {value!r}")


def to_external_state(status: str) -> str:
    """pending/in_progress -> open, done/cancelled -> closed."""
    if normalize_status(status) in (RequestStatus.DONE.value, RequestStatus.CANCELLED.value):
        return STATE_CLOSED
    return STATE_OPEN


def to_local_status(state: Optional[str], labels: Optional[Iterable[str]] = None) -> str:
    """Reconstruct the local status from a GitHub state and label names.

    Explicit ``status-*`` label first, then legacy bare tokens, then the
    coarse state (closed -> done, anything else -> pending).
    """
    normalized = [str(label).strip().lower() for label in (labels or []) if label]

    for label in normalized:
        if label.startswith(STATUS_LABEL_PREFIX):
            candidate = label[len(STATUS_LABEL_PREFIX):]
            if candidate in LOCAL_STATUSES:
                return candidate

    for token in _LEGACY_STATUS_TOKENS:
        if token in normalized:
            return token

    if (state or "").strip().lower() == STATE_CLOSED:
        return RequestStatus.DONE.value
    return RequestStatus.PENDING.value


def type_label(request_type: str) -> str:
    return _TYPE_LABELS.get(request_type, "enhancement")


def build_label_set(status: str, request_type: str, priority: str) -> Set[str]:
    """The full managed label set for a request: type, priority and status."""
    return {
        type_label(request_type),
        f"{PRIORITY_LABEL_PREFIX}{priority}",
        f"{STATUS_LABEL_PREFIX}{normalize_status(status)}",
    }


def is_managed_label(name: str) -> bool:
    """True for labels this service owns and may add or remove."""
    label = (name or "").strip().lower()
    if label in _TYPE_LABELS.values():
        return True
    return label.startswith(STATUS_LABEL_PREFIX) or label.startswith(PRIORITY_LABEL_PREFIX)


def merge_labels(existing: Optional[Iterable[str]], managed: Iterable[str]) -> List[str]:
    """Replace the managed labels in ``existing`` by ``managed``.

    Labels added on GitHub outside the managed vocabulary are kept as-is.
    """
    foreign = [label for label in (existing or []) if label and not is_managed_label(label)]
    return sorted(set(foreign) | set(managed))
