"""
Transaction lifecycle rules, free of any storage concerns.

    pending ──► processing ──► success ──► refunded
       │             │
       └─────────────┴──────► failed

Shared by the server-side state machine and the client status tracker.
"""
PENDING = "pending"
PROCESSING = "processing"
SUCCESS = "success"
FAILED = "failed"
REFUNDED = "refunded"

STATUSES = (PENDING, PROCESSING, SUCCESS, FAILED, REFUNDED)
OPEN_STATUSES = (PENDING, PROCESSING)
TERMINAL_STATUSES = (SUCCESS, FAILED, REFUNDED)

ALLOWED_TRANSITIONS = {
    PENDING: {PROCESSING, SUCCESS, FAILED},
    PROCESSING: {SUCCESS, FAILED},
    SUCCESS: {REFUNDED},
    FAILED: set(),
    REFUNDED: set(),
}

_TERMINAL_LABELS = {SUCCESS: "Completed", FAILED: "Failed", REFUNDED: "Refunded"}


def can_transition(current: str, target: str) -> bool:
    return current == target or target in ALLOWED_TRANSITIONS.get(current, set())


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def build_timeline(status: str, initiated_at=None, processed_at=None, finished_at=None) -> list[dict]:
    """Three fixed checkpoints: Initiated, Processing, Completed/Failed."""
    return [
        {
            "key": "initiated",
            "label": "Payment Initiated",
            "completed": True,
            "timestamp": initiated_at,
        },
        {
            "key": "processing",
            "label": "Processing",
            "completed": status != PENDING,
            "timestamp": processed_at if status != PENDING else None,
        },
        {
            "key": "completed",
            "label": _TERMINAL_LABELS.get(status, "Pending"),
            "completed": is_terminal(status),
            "timestamp": finished_at if is_terminal(status) else None,
        },
    ]
