"""
Write a photo's geotag into its JPEG metadata.

GPS position, altitude and heading go into the EXIF GPS IFD via piexif.
Pitch and roll have no EXIF tag; they are written as XMP GPano pose tags
with ExifTool.
"""
import io
import logging
import struct
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List

import piexif

from streetview_drive_migration.exceptions import MetadataError
from streetview_drive_migration.transfer.geotag import Geotag, deg_to_dms_rational, to_rational

logger = logging.getLogger(__name__)

JPEG_SOI = b"\xff\xd8"


def build_gps_ifd(geotag: Geotag) -> Dict[int, object]:
    """
    Build the EXIF GPS IFD for a geotag.

    Latitude/longitude are always written; altitude and heading only when present.
    """
    gps = {
        piexif.GPSIFD.GPSVersionID: (2, 2, 0, 0),
        piexif.GPSIFD.GPSLatitudeRef: 'S' if geotag.latitude < 0 else 'N',
        piexif.GPSIFD.GPSLatitude: deg_to_dms_rational(abs(geotag.latitude)),
        piexif.GPSIFD.GPSLongitudeRef: 'W' if geotag.longitude < 0 else 'E',
        piexif.GPSIFD.GPSLongitude: deg_to_dms_rational(abs(geotag.longitude)),
    }

    if geotag.altitude is not None:
        gps[piexif.GPSIFD.GPSAltitude] = to_rational(abs(geotag.altitude))
        gps[piexif.GPSIFD.GPSAltitudeRef] = 1 if geotag.altitude < 0 else 0

    if geotag.heading is not None:
        gps[piexif.GPSIFD.GPSImgDirection] = to_rational(geotag.heading % 360)
        gps[piexif.GPSIFD.GPSImgDirectionRef] = 'T'

    return gps


class ExifGeotagInjector:
    """Rewrites JPEG bytes so their metadata carries the given geotag."""

    def __init__(self, exiftool_path: str = 'exiftool', write_orientation: bool = True,
                 timeout: float = 60.0):
        """
        Args:
            exiftool_path: ExifTool executable used for pitch/roll tags
            write_orientation: Write XMP pose tags when pitch or roll is present
            timeout: ExifTool timeout in seconds
        """
        self.exiftool_path = exiftool_path
        self.write_orientation = write_orientation
        self.timeout = timeout

    def check_exiftool(self) -> str:
        """
        Return the installed ExifTool version.

        Raises:
            MetadataError: If ExifTool cannot be run
        """
        try:
            result = subprocess.run(
                [self.exiftool_path, '-ver'],
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise MetadataError(
                "ExifTool is not installed. Please install it:\n"
                "  macOS: brew install exiftool\n"
                "  Linux: apt-get install libimage-exiftool-perl\n"
                "  Or download from: https://exiftool.org/"
            ) from e
        version = result.stdout.strip()
        logger.info(f"ExifTool version {version} found")
        return version

    def inject(self, data: bytes, geotag: Geotag) -> bytes:
        """
        Return a copy of ``data`` with the GPS block replaced by ``geotag``.

        Raises:
            MetadataError: If the image cannot be parsed or rewritten
        """
        if data[:2] != JPEG_SOI:
            raise MetadataError("Photo data is not a JPEG image")
        try:
            exif = piexif.load(data)
            exif['GPS'] = build_gps_ifd(geotag)
            exif_bytes = piexif.dump(exif)
            output = io.BytesIO()
            piexif.insert(exif_bytes, data, output)
            result = output.getvalue()
        except (ValueError, KeyError, struct.error) as e:
            raise MetadataError(f"Failed to write GPS metadata: {e}") from e

        if self.write_orientation and geotag.has_orientation:
            result = self._write_pose_tags(result, geotag)
        return result

    def build_pose_args(self, geotag: Geotag) -> List[str]:
        """ExifTool arguments for the pitch/roll tags; a missing half is written as 0."""
        return [
            f"-XMP-GPano:PosePitchDegrees={geotag.pitch or 0}",
            f"-XMP-GPano:PoseRollDegrees={geotag.roll or 0}",
        ]

    def _write_pose_tags(self, data: bytes, geotag: Geotag) -> bytes:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / 'photo.jpg'
            path.write_bytes(data)
            args = [self.exiftool_path, '-overwrite_original', *self.build_pose_args(geotag), str(path)]
            try:
                result = subprocess.run(args, capture_output=True, text=True, timeout=self.timeout)
            except FileNotFoundError as e:
                raise MetadataError("ExifTool is not installed; cannot write pitch/roll tags") from e
            except subprocess.TimeoutExpired as e:
                raise MetadataError(f"ExifTool timed out after {self.timeout} seconds") from e

            if result.returncode != 0:
                raise MetadataError(f"ExifTool failed: {result.stderr.strip() or result.stdout.strip()}")
            return path.read_bytes()
