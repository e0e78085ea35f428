"""
Per-session partition of the catalog into transferred and missing photos.
"""
import logging
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Set

from streetview_drive_migration.exceptions import LedgerInvariantError
from streetview_drive_migration.models import Photo

logger = logging.getLogger(__name__)


class Membership(Enum):
    """Which side of the partition a photo is on."""
    TRANSFERRED = "transferred"
    MISSING = "missing"


class SessionLedger:
    """
    Tracks which catalog photos already exist at the destination.

    The catalog is the order source; membership lives in a map keyed by
    photo id so moves are O(1) and both partitions iterate in catalog order.
    """

    def __init__(self, catalog: Sequence[Photo] = (), transferred_names: Optional[Set[str]] = None):
        self._catalog: List[Photo] = []
        self._by_id: Dict[str, Photo] = {}
        self._membership: Dict[str, Membership] = {}
        self.partition_from(catalog, transferred_names or set())

    def partition_from(self, catalog: Sequence[Photo], transferred_names: Set[str]) -> None:
        """
        Rebuild both partitions from a fresh catalog load.

        Args:
            catalog: Photos in source listing order
            transferred_names: Destination names currently present in the store
        """
        self._catalog = list(catalog)
        self._by_id = {photo.photo_id: photo for photo in self._catalog}
        self._membership = {
            photo.photo_id: (
                Membership.TRANSFERRED
                if photo.destination_name in transferred_names
                else Membership.MISSING
            )
            for photo in self._catalog
        }
        self.check_invariant()
        logger.debug(
            f"Ledger partitioned: {self.transferred_count} transferred, "
            f"{self.missing_count} missing"
        )

    def move_to_transferred(self, photo_id: str) -> bool:
        """
        Move one photo from missing to transferred.

        Returns:
            True if the photo moved, False if it was not in the missing set
        """
        if self._membership.get(photo_id) is not Membership.MISSING:
            logger.warning(f"Photo {photo_id} is not in the missing set; ledger unchanged")
            return False
        self._membership[photo_id] = Membership.TRANSFERRED
        self.check_invariant()
        return True

    def membership(self, photo_id: str) -> Optional[Membership]:
        return self._membership.get(photo_id)

    def find(self, photo_id: str) -> Optional[Photo]:
        return self._by_id.get(photo_id)

    def _members(self, side: Membership) -> List[Photo]:
        return [p for p in self._catalog if self._membership[p.photo_id] is side]

    @property
    def all(self) -> List[Photo]:
        return list(self._catalog)

    @property
    def transferred(self) -> List[Photo]:
        return self._members(Membership.TRANSFERRED)

    @property
    def missing(self) -> List[Photo]:
        return self._members(Membership.MISSING)

    @property
    def transferred_count(self) -> int:
        return sum(1 for m in self._membership.values() if m is Membership.TRANSFERRED)

    @property
    def missing_count(self) -> int:
        return len(self._membership) - self.transferred_count

    @property
    def transferred_names(self) -> Set[str]:
        return {p.destination_name for p in self.transferred}

    def check_invariant(self) -> None:
        """Raise LedgerInvariantError unless the partition covers the catalog exactly."""
        if set(self._membership) != set(self._by_id):
            raise LedgerInvariantError("Ledger membership does not match the catalog")
        if len(self._by_id) != len(self._catalog):
            raise LedgerInvariantError("Catalog contains duplicate photo ids")

    def __contains__(self, photo_id: object) -> bool:
        return photo_id in self._membership

    def __len__(self) -> int:
        return len(self._catalog)

    def __iter__(self) -> Iterator[Photo]:
        return iter(self._catalog)
