"""Capability interfaces consumed by the transfer core."""
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Protocol, Sequence, Set, Tuple

from streetview_drive_migration.models import Photo

if TYPE_CHECKING:
    from streetview_drive_migration.transfer.geotag import Geotag

# Receives an integer percentage in [0, 100].
ProgressCallback = Callable[[int], None]


class PhotoSource(Protocol):
    """Remote catalog the photos are read from."""

    def list_all(self, page_token: Optional[str] = None) -> Tuple[List[Photo], Optional[str]]:
        """List one page of photos. Returns (photos, next_page_token)."""
        ...

    def fetch(self, url: str, progress_callback: Optional[ProgressCallback] = None) -> bytes:
        """Download the image bytes behind a photo's download URL."""
        ...


class ObjectStore(Protocol):
    """Destination folder photos are written to."""

    def list_existing(self) -> Set[str]:
        """Names of the files currently stored in the destination folder."""
        ...

    def create(self, name: str, data: bytes,
               progress_callback: Optional[ProgressCallback] = None) -> str:
        """Create a new file. Returns the store's file id."""
        ...

    def update(self, name: str, data: bytes,
               progress_callback: Optional[ProgressCallback] = None) -> str:
        """Overwrite the content of an existing file. Returns its file id."""
        ...

    def upsert(self, name: str, data: bytes,
               progress_callback: Optional[ProgressCallback] = None) -> str:
        """Update the file called ``name`` if it exists, create it otherwise."""
        ...

    def delete(self, file_id: str) -> None:
        """Delete one file by store id."""
        ...

    def read_catalog(self) -> Optional[List[Photo]]:
        """Cached catalog stored next to the photos, or None when there is none."""
        ...

    def write_catalog(self, photos: Sequence[Photo]) -> str:
        ...

    def destination_report(self, catalog: Sequence[Photo]) -> Any:
        """Duplicate and unmatched files; the result must provide ``to_dict()``."""
        ...


class MetadataInjector(Protocol):
    """Rewrites the embedded location/orientation metadata of an image."""

    def inject(self, data: bytes, geotag: 'Geotag') -> bytes:
        ...
