"""
Catalog data model for Street View photos.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

POSE_PROPERTIES = ('heading', 'pitch', 'roll', 'altitude', 'latLngPair')
DESTINATION_SUFFIX = '.jpg'


def destination_name(photo_id: str) -> str:
    """Name a photo is stored under in the destination folder."""
    return f"{photo_id}{DESTINATION_SUFFIX}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class Pose:
    """Location and orientation of a photo."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    heading: Optional[float] = None
    pitch: Optional[float] = None
    roll: Optional[float] = None
    altitude: Optional[float] = None

    @property
    def has_lat_lng(self) -> bool:
        return _is_number(self.latitude) and _is_number(self.longitude)

    def has(self, prop: str) -> bool:
        """
        Check whether a pose property carries a numeric value.

        Unknown property names are never present.
        """
        if prop == 'latLngPair':
            return self.has_lat_lng
        if prop not in POSE_PROPERTIES:
            return False
        return _is_number(getattr(self, prop))

    @classmethod
    def from_api(cls, data: Optional[Dict[str, Any]]) -> Optional['Pose']:
        if not data:
            return None
        lat_lng = data.get('latLngPair') or {}
        return cls(
            latitude=lat_lng.get('latitude'),
            longitude=lat_lng.get('longitude'),
            heading=data.get('heading'),
            pitch=data.get('pitch'),
            roll=data.get('roll'),
            altitude=data.get('altitude'),
        )

    def to_api(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.latitude is not None or self.longitude is not None:
            result['latLngPair'] = {'latitude': self.latitude, 'longitude': self.longitude}
        for prop in ('heading', 'pitch', 'roll', 'altitude'):
            value = getattr(self, prop)
            if value is not None:
                result[prop] = value
        return result


@dataclass(frozen=True)
class Photo:
    """One catalog entry. Never mutated; identity is ``photo_id``."""
    photo_id: str
    download_url: str
    capture_time: Optional[str] = None
    view_count: int = 0
    place_name: Optional[str] = None
    pose: Optional[Pose] = None
    share_link: Optional[str] = None
    thumbnail_url: Optional[str] = None

    @property
    def destination_name(self) -> str:
        return destination_name(self.photo_id)

    def has_pose(self, prop: str) -> bool:
        return self.pose is not None and self.pose.has(prop)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Photo':
        """
        Build a photo from a Street View Publish API ``Photo`` resource.

        Args:
            data: Resource dictionary as returned by ``photos.list``

        Returns:
            Photo instance
        """
        places = data.get('places') or []
        place_name = places[0].get('name') if places else None
        try:
            view_count = int(data.get('viewCount') or 0)
        except (TypeError, ValueError):
            view_count = 0
        return cls(
            photo_id=data['photoId']['id'],
            download_url=data.get('downloadUrl', ''),
            capture_time=data.get('captureTime'),
            view_count=view_count,
            place_name=place_name or None,
            pose=Pose.from_api(data.get('pose')),
            share_link=data.get('shareLink'),
            thumbnail_url=data.get('thumbnailUrl'),
        )

    def to_api(self) -> Dict[str, Any]:
        """Render back to the API resource shape used by the cached catalog file."""
        data: Dict[str, Any] = {
            'photoId': {'id': self.photo_id},
            'downloadUrl': self.download_url,
            'viewCount': str(self.view_count),
        }
        if self.capture_time:
            data['captureTime'] = self.capture_time
        if self.place_name:
            data['places'] = [{'name': self.place_name}]
        if self.pose is not None:
            data['pose'] = self.pose.to_api()
        if self.share_link:
            data['shareLink'] = self.share_link
        if self.thumbnail_url:
            data['thumbnailUrl'] = self.thumbnail_url
        return data
