"""Status Configuration and Transition Rules

Defines the closed set of build order statuses and the only transitions
between them. Lifecycle operations look up their target status here and
reject anything the table does not allow.
"""
from enum import Enum
from typing import Dict, List, Set


# =============================================================================
# Build Order Status
# =============================================================================

class BuildOrderStatus(str, Enum):
    """Valid status values for Build Orders"""
    PLANNED = "planned"
    MATERIALS_RESERVED = "materials_reserved"
    IN_PROGRESS = "in_progress"
    QC = "qc"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


# Allowed transitions: current_status -> set of allowed next statuses
BUILD_ORDER_TRANSITIONS: Dict[BuildOrderStatus, Set[BuildOrderStatus]] = {
    BuildOrderStatus.PLANNED: {
        BuildOrderStatus.MATERIALS_RESERVED,
        BuildOrderStatus.CANCELLED,
    },
    BuildOrderStatus.MATERIALS_RESERVED: {
        BuildOrderStatus.IN_PROGRESS,
        BuildOrderStatus.CANCELLED,
    },
    BuildOrderStatus.IN_PROGRESS: {
        BuildOrderStatus.QC,
        BuildOrderStatus.CANCELLED,
    },
    BuildOrderStatus.QC: {
        BuildOrderStatus.COMPLETE,
        BuildOrderStatus.CANCELLED,
    },
    BuildOrderStatus.COMPLETE: set(),  # Terminal state
    BuildOrderStatus.CANCELLED: set(),  # Terminal state
}

# Lifecycle operation -> status it moves the order to
BUILD_ORDER_OPERATIONS: Dict[str, BuildOrderStatus] = {
    "reserve_materials": BuildOrderStatus.MATERIALS_RESERVED,
    "start_build": BuildOrderStatus.IN_PROGRESS,
    "submit_to_qc": BuildOrderStatus.QC,
    "complete_build": BuildOrderStatus.COMPLETE,
    "cancel_build": BuildOrderStatus.CANCELLED,
}

# Order matters for display and for deterministic error messages
_STATUS_ORDER = list(BuildOrderStatus)


def _sorted(statuses) -> List[str]:
    return [s.value for s in _STATUS_ORDER if s in statuses]


def get_allowed_build_order_transitions(current_status: str) -> List[str]:
    """Get list of allowed next statuses for a build order"""
    return _sorted(BUILD_ORDER_TRANSITIONS.get(BuildOrderStatus(current_status), set()))


def get_accepted_source_statuses(target_status: str) -> List[str]:
    """Statuses from which a build order may move to ``target_status``"""
    target = BuildOrderStatus(target_status)
    return _sorted({s for s, allowed in BUILD_ORDER_TRANSITIONS.items() if target in allowed})


def is_valid_build_order_transition(current_status: str, new_status: str) -> bool:
    """Check if a build order status transition is valid"""
    allowed = BUILD_ORDER_TRANSITIONS.get(BuildOrderStatus(current_status), set())
    return BuildOrderStatus(new_status) in allowed


def is_terminal_status(status: str) -> bool:
    return not BUILD_ORDER_TRANSITIONS[BuildOrderStatus(status)]


ACTIVE_STATUSES: List[str] = [
    s.value for s in BuildOrderStatus if not is_terminal_status(s.value)
]


# =============================================================================
# Stock / Transaction / Cost vocabularies
# =============================================================================

class StockStatus(str, Enum):
    """Derived status tag of an inventory record"""
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    OVERSTOCK = "overstock"


class TransactionType(str, Enum):
    """Inventory transaction types"""
    RESERVE = "reserve"
    UNRESERVE = "unreserve"
    CONSUME = "consume"
    # Written by the receiving collaborator
    RECEIVE = "receive"
    ADJUST = "adjust"


class BuildPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class QCStatus(str, Enum):
    """Quality Control status of a build order"""
    PENDING = "pending"
    PASSED = "passed"
    PARTIAL = "partial"
    FAILED = "failed"


class ConsumptionPoint(str, Enum):
    """When reserved materials leave inventory"""
    START = "start"
    COMPLETE = "complete"


class CostType(str, Enum):
    ESTIMATE = "estimate"
    ACTUAL = "actual"


class CostSource(str, Enum):
    """Where a unit cost came from, in lookup priority order"""
    PO_LAST = "po_last"
    INVENTORY_AVG = "inventory_avg"
    SUPPLIER_PREFERRED = "supplier_preferred"
    SUPPLIER_PRICE = "supplier_price"
    UNKNOWN = "unknown"
