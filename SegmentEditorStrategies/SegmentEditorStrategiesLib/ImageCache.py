"""In-memory lookup of image volumes and slice images by id.

The rendering side owns the real cache; this module only provides the
lookup-by-id contract the strategies and conversions rely on, together with
helpers that create derived (segmentation) buffers sharing a reference
geometry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .Errors import NotFound
from .Geometry import ImageGeometry

logger = logging.getLogger(__name__)


@dataclass
class ImageVolume:
    """A dense 3D scalar grid stored as a flat buffer."""

    volumeId: str
    geometry: ImageGeometry
    scalarData: np.ndarray
    referencedVolumeId: Optional[str] = None
    imageIds: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.scalarData = np.asarray(self.scalarData).reshape(-1)
        if self.scalarData.size != self.geometry.numVoxels:
            raise ValueError(
                f"Volume {self.volumeId}: scalarData has {self.scalarData.size} values, "
                f"expected {self.geometry.numVoxels} for dimensions {self.geometry.dimensions}"
            )

    @property
    def dimensions(self) -> tuple[int, int, int]:
        return self.geometry.dimensions

    @property
    def spacing(self) -> tuple[float, float, float]:
        return self.geometry.spacing

    @property
    def origin(self) -> tuple[float, float, float]:
        return self.geometry.origin

    @property
    def direction(self) -> np.ndarray:
        return self.geometry.direction

    def getScalarDataArray(self) -> np.ndarray:
        """Return a (k, j, i) view onto the flat scalar buffer."""
        return self.scalarData.reshape(self.geometry.shape)


@dataclass
class CachedImage:
    """A single 2D slice image.

    ``pixelData`` has shape (rows, columns); the geometry dimensions are
    (columns, rows, 1).
    """

    imageId: str
    pixelData: np.ndarray
    geometry: ImageGeometry
    referencedImageId: Optional[str] = None

    def __post_init__(self):
        self.pixelData = np.asarray(self.pixelData)
        if self.pixelData.ndim != 2:
            raise ValueError(f"Image {self.imageId}: pixelData must be 2D")
        rows, columns = self.pixelData.shape
        if self.geometry.dimensions[:2] != (columns, rows):
            raise ValueError(
                f"Image {self.imageId}: pixelData shape {self.pixelData.shape} does not "
                f"match geometry dimensions {self.geometry.dimensions}"
            )

    @property
    def rows(self) -> int:
        return self.pixelData.shape[0]

    @property
    def columns(self) -> int:
        return self.pixelData.shape[1]


class ImageCache:
    """Id-keyed store of volumes and images."""

    def __init__(self):
        self._volumes: dict[str, ImageVolume] = {}
        self._images: dict[str, CachedImage] = {}

    def putVolume(self, volume: ImageVolume) -> ImageVolume:
        self._volumes[volume.volumeId] = volume
        return volume

    def getVolume(self, volumeId: str) -> ImageVolume:
        try:
            return self._volumes[volumeId]
        except KeyError:
            raise NotFound(f"Volume {volumeId!r} not found in cache") from None

    def hasVolume(self, volumeId: str) -> bool:
        return volumeId in self._volumes

    def removeVolume(self, volumeId: str) -> None:
        self._volumes.pop(volumeId, None)

    def putImage(self, image: CachedImage) -> CachedImage:
        self._images[image.imageId] = image
        return image

    def getImage(self, imageId: str) -> CachedImage:
        try:
            return self._images[imageId]
        except KeyError:
            raise NotFound(f"Image {imageId!r} not found in cache") from None

    def hasImage(self, imageId: str) -> bool:
        return imageId in self._images

    def removeImage(self, imageId: str) -> None:
        self._images.pop(imageId, None)

    def createAndCacheDerivedSegmentationVolume(
        self, referencedVolumeId: str, volumeId: Optional[str] = None
    ) -> ImageVolume:
        """Create an empty uint8 labelmap volume on the grid of a reference volume."""
        reference = self.getVolume(referencedVolumeId)
        volumeId = volumeId or f"{referencedVolumeId}::segmentation"
        derived = ImageVolume(
            volumeId=volumeId,
            geometry=reference.geometry.copy(),
            scalarData=np.zeros(reference.geometry.numVoxels, dtype=np.uint8),
            referencedVolumeId=referencedVolumeId,
        )
        logger.debug(f"Created derived segmentation volume {volumeId} from {referencedVolumeId}")
        return self.putVolume(derived)

    def createAndCacheDerivedSegmentationImages(
        self, referencedImageIds: list[str]
    ) -> list[CachedImage]:
        """Create one empty uint8 labelmap image per referenced image."""
        derived = []
        for imageId in referencedImageIds:
            reference = self.getImage(imageId)
            image = CachedImage(
                imageId=f"derived::{imageId}",
                pixelData=np.zeros(reference.pixelData.shape, dtype=np.uint8),
                geometry=reference.geometry.copy(),
                referencedImageId=imageId,
            )
            derived.append(self.putImage(image))
        logger.debug(f"Created {len(derived)} derived segmentation images")
        return derived

    def clear(self) -> None:
        self._volumes.clear()
        self._images.clear()


cache = ImageCache()
