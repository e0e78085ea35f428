"""
Catalog filtering and pagination.

Everything in this module is a pure function over an in-memory photo list:
no I/O, no shared state. The same functions select a transfer set and
render result listings.
"""
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from streetview_drive_migration.exceptions import ValidationError
from streetview_drive_migration.models import POSE_PROPERTIES, Photo

PAGE_SIZE = 50
MAX_PAGES_SHOWN = 10


class TransferStatus(Enum):
    """Transfer-status facet of a catalog view."""
    ALL = "all"
    TRANSFERRED = "transferred"
    MISSING = "missing"


class PoseMode(Enum):
    """Existence test applied to one pose property."""
    ANY = "any"
    EXISTS = "exists"
    MISSING = "missing"


# Older clients still send the original wording for the status facet.
_STATUS_ALIASES = {
    'downloaded': TransferStatus.TRANSFERRED,
    'not-downloaded': TransferStatus.MISSING,
}


@dataclass(frozen=True)
class PoseFilter:
    """Existence predicate for a single pose property."""
    property: str
    mode: PoseMode = PoseMode.ANY

    def matches(self, photo: Photo) -> bool:
        if self.mode is PoseMode.ANY:
            return True
        exists = photo.has_pose(self.property)
        return exists if self.mode is PoseMode.EXISTS else not exists


@dataclass(frozen=True)
class FilterSpec:
    """Search text, status and pose predicates defining a catalog view."""
    search: str = ""
    status: TransferStatus = TransferStatus.ALL
    pose_filters: Tuple[PoseFilter, ...] = ()
    page: int = 1

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> 'FilterSpec':
        """
        Build a filter spec from a control-plane payload.

        Args:
            payload: Dictionary with optional ``search``, ``status``,
                     ``filters`` (or ``poseFilters``) and ``page`` keys

        Returns:
            FilterSpec instance

        Raises:
            ValidationError: If status, mode or page values are malformed
        """
        payload = payload or {}
        search = payload.get('search') or ""
        if not isinstance(search, str):
            raise ValidationError(f"search must be a string, got {type(search).__name__}")

        status = _parse_status(payload.get('status'))

        raw_filters = payload.get('poseFilters', payload.get('filters')) or []
        pose_filters = tuple(_parse_pose_filter(item) for item in raw_filters)

        page = payload.get('page')
        if page is None or page == '':
            page = 1
        try:
            page = int(page)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"page must be an integer, got {page!r}") from e
        if page < 1:
            raise ValidationError(f"page must be at least 1, got {page}")

        return cls(search=search, status=status, pose_filters=pose_filters, page=page)


def _parse_status(value: Any) -> TransferStatus:
    if value is None or value == "":
        return TransferStatus.ALL
    if isinstance(value, TransferStatus):
        return value
    key = str(value).lower()
    if key in _STATUS_ALIASES:
        return _STATUS_ALIASES[key]
    try:
        return TransferStatus(key)
    except ValueError as e:
        raise ValidationError(f"Unknown status: {value!r}") from e


def _parse_pose_filter(item: Any) -> PoseFilter:
    # A bare property name is the legacy shape and means "exists".
    if isinstance(item, str):
        return PoseFilter(item, PoseMode.EXISTS)
    if not isinstance(item, dict) or 'property' not in item:
        raise ValidationError(f"Malformed pose filter: {item!r}")
    mode = item.get('mode', item.get('value', PoseMode.ANY.value))
    try:
        mode = PoseMode(str(mode).lower())
    except ValueError as e:
        raise ValidationError(f"Unknown pose filter mode: {mode!r}") from e
    return PoseFilter(str(item['property']), mode)


@dataclass
class FilterResult:
    """Outcome of applying a FilterSpec to a catalog."""
    photos: List[Photo]
    status_filtered: List[Photo]
    counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class Page:
    """One page of a filtered listing."""
    items: List[Photo]
    page: int
    page_size: int
    total_items: int
    total_pages: int
    start_index: int
    end_index: int

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    def to_dict(self, max_pages: int = MAX_PAGES_SHOWN) -> Dict[str, Any]:
        return {
            'page': self.page,
            'pageSize': self.page_size,
            'totalItems': self.total_items,
            'totalPages': self.total_pages,
            'startIndex': self.start_index,
            'endIndex': self.end_index,
            'hasPrevious': self.has_previous,
            'hasNext': self.has_next,
            'window': page_window(self.page, self.total_pages, max_pages),
        }


def matches_search(photo: Photo, search: str) -> bool:
    """Case-insensitive substring match against the photo's place name."""
    if not search:
        return True
    if not photo.place_name:
        return False
    return search.lower() in photo.place_name.lower()


def matches_status(photo: Photo, status: TransferStatus, transferred_names: Set[str]) -> bool:
    """Membership test keyed by the photo's destination name."""
    if status is TransferStatus.ALL:
        return True
    is_transferred = photo.destination_name in transferred_names
    return is_transferred if status is TransferStatus.TRANSFERRED else not is_transferred


def matches_pose(photo: Photo, pose_filters: Iterable[PoseFilter]) -> bool:
    """AND of every pose filter entry."""
    return all(f.matches(photo) for f in pose_filters)


def apply_filters(catalog: Sequence[Photo], spec: FilterSpec,
                  transferred_names: Set[str]) -> FilterResult:
    """
    Apply search, status and pose predicates in that order.

    Args:
        catalog: Photos in source listing order
        spec: Filter definition
        transferred_names: Destination names already present in the store

    Returns:
        FilterResult holding the fully filtered photos, the photos that passed
        search and status (used for pose facet counts) and summary counts
    """
    by_search = [p for p in catalog if matches_search(p, spec.search)]
    by_status = [p for p in by_search if matches_status(p, spec.status, transferred_names)]
    by_pose = [p for p in by_status if matches_pose(p, spec.pose_filters)]

    transferred = sum(1 for p in by_search if p.destination_name in transferred_names)
    counts = {
        'total': len(catalog),
        'searched': len(by_search),
        'transferred': transferred,
        'missing': len(by_search) - transferred,
        'filtered': len(by_pose),
    }
    return FilterResult(photos=by_pose, status_filtered=by_status, counts=counts)


def count_pose_attributes(photos: Iterable[Photo]) -> Dict[str, Dict[str, int]]:
    """Count how many photos have or lack each pose property."""
    counts = {prop: {'exists': 0, 'missing': 0} for prop in POSE_PROPERTIES}
    for photo in photos:
        for prop in POSE_PROPERTIES:
            key = 'exists' if photo.has_pose(prop) else 'missing'
            counts[prop][key] += 1
    return counts


def paginate(items: Sequence[Photo], page: int, page_size: int = PAGE_SIZE) -> Page:
    """
    Slice one page out of a filtered listing.

    Callers must pass ``page >= 1``; pages past the end come back empty.
    """
    total = len(items)
    total_pages = math.ceil(total / page_size)
    start = (page - 1) * page_size
    sliced = list(items[start:start + page_size])
    return Page(
        items=sliced,
        page=page,
        page_size=page_size,
        total_items=total,
        total_pages=total_pages,
        start_index=start + 1 if sliced else 0,
        end_index=start + len(sliced),
    )


def page_window(page: int, total_pages: int, max_pages: int = MAX_PAGES_SHOWN) -> List[Any]:
    """
    Page numbers to show in a pagination bar.

    Returns a list of ints with ``"..."`` marking elided ranges, e.g.
    ``[1, "...", 7, 8, 9, 10, 11, 12, 13, 14, 15, 16, "...", 40]`` for page 12 of 40.
    An empty list means no pagination bar is needed.
    """
    if total_pages <= 1:
        return []

    if total_pages <= max_pages:
        start, end = 1, total_pages
    else:
        before = max_pages // 2
        after = math.ceil(max_pages / 2) - 1
        if page <= before:
            start, end = 1, max_pages
        elif page + after >= total_pages:
            start, end = total_pages - max_pages + 1, total_pages
        else:
            start, end = page - before, page + after

    window: List[Any] = []
    if start > 1:
        window.append(1)
        if start > 2:
            window.append("...")
    window.extend(range(start, end + 1))
    if end < total_pages:
        if end < total_pages - 1:
            window.append("...")
        window.append(total_pages)
    return window


_FRACTION = re.compile(r"\.(\d+)")


def _capture_timestamp(photo: Photo) -> float:
    if not photo.capture_time:
        return 0.0
    # fromisoformat before Python 3.11 takes only 3 or 6 fractional digits
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), photo.capture_time, count=1)
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def sort_photos(photos: Iterable[Photo], sort_by: str = "date", order: str = "desc") -> List[Photo]:
    """Order a listing by capture date (default) or view count."""
    key = (lambda p: p.view_count) if sort_by == "views" else _capture_timestamp
    return sorted(photos, key=key, reverse=(order != "asc"))
