"""SimpleITK image <-> cached volume bridging."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import numpy as np
import SimpleITK as sitk

from .Geometry import ImageGeometry
from .ImageCache import ImageCache, ImageVolume

logger = logging.getLogger(__name__)


def geometryFromSitkImage(image: sitk.Image) -> ImageGeometry:
    # SimpleITK stores the direction column-wise: column a is index axis a
    direction = np.asarray(image.GetDirection(), dtype=np.float64).reshape(3, 3).T
    return ImageGeometry(
        dimensions=image.GetSize(),
        spacing=image.GetSpacing(),
        origin=image.GetOrigin(),
        direction=direction,
    )


def volumeFromSitkImage(
    image: sitk.Image,
    volumeId: str,
    cache: Optional[ImageCache] = None,
    referencedVolumeId: Optional[str] = None,
) -> ImageVolume:
    """Wrap a 3D SimpleITK image as an ImageVolume, caching it if a cache is given."""
    if image.GetDimension() != 3:
        raise ValueError(f"Expected a 3D image, got {image.GetDimension()}D")
    volume = ImageVolume(
        volumeId=volumeId,
        geometry=geometryFromSitkImage(image),
        scalarData=sitk.GetArrayFromImage(image).reshape(-1),
        referencedVolumeId=referencedVolumeId,
    )
    if cache is not None:
        cache.putVolume(volume)
    return volume


def sitkImageFromVolume(volume: ImageVolume) -> sitk.Image:
    image = sitk.GetImageFromArray(volume.getScalarDataArray())
    image.SetSpacing(volume.spacing)
    image.SetOrigin(volume.origin)
    image.SetDirection(tuple(float(v) for v in volume.direction.T.reshape(-1)))
    return image


def readVolume(path: Path | str, volumeId: Optional[str] = None, cache: Optional[ImageCache] = None) -> ImageVolume:
    path = Path(path)
    image = sitk.ReadImage(str(path))
    volume = volumeFromSitkImage(image, volumeId or path.name, cache)
    logger.info(f"Read {path} as volume {volume.volumeId} with dimensions {volume.dimensions}")
    return volume


def writeVolume(volume: ImageVolume, path: Path | str) -> None:
    sitk.WriteImage(sitkImageFromVolume(volume), str(path))
    logger.info(f"Wrote volume {volume.volumeId} to {path}")
