"""Catalog filtering, pagination and per-session ledger."""
from streetview_drive_migration.catalog.filters import (
    FilterSpec,
    PoseFilter,
    PoseMode,
    TransferStatus,
    apply_filters,
    count_pose_attributes,
    paginate,
)
from streetview_drive_migration.catalog.ledger import Membership, SessionLedger

__all__ = [
    'FilterSpec',
    'PoseFilter',
    'PoseMode',
    'TransferStatus',
    'apply_filters',
    'count_pose_attributes',
    'paginate',
    'Membership',
    'SessionLedger',
]
