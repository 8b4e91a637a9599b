#!/usr/bin/env python
"""Convert a labelmap image to surface meshes (and optionally contours).

Reads a labelmap with SimpleITK, registers it as the authoritative
representation of a segmentation and writes one Wavefront OBJ file per
segment.

Usage:
    python scripts/convert_labelmap.py LABELMAP OUTPUT_DIR [options]

Examples:
    # All segments present in the labelmap
    python scripts/convert_labelmap.py seg.nrrd meshes/

    # Segments 1 and 3, with per-slice contours written as JSON
    python scripts/convert_labelmap.py seg.nrrd meshes/ --segments 1 3 --contours
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "SegmentEditorStrategies"))

from SegmentEditorStrategiesLib import (  # noqa: E402
    ImageCache,
    LabelmapVolumeData,
    PolySeg,
    RepresentationType,
    SegmentationStore,
    StrategyConfig,
    create_default_config,
    readVolume,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s",
)
logger = logging.getLogger("convert_labelmap")


def write_obj(path: Path, vertices, triangles) -> None:
    with open(path, "w") as f:
        for x, y, z in vertices:
            f.write(f"v {x:.6f} {y:.6f} {z:.6f}\n")
        # OBJ indices are 1-based
        for a, b, c in triangles:
            f.write(f"f {a + 1} {b + 1} {c + 1}\n")


def write_contours(path: Path, contourData) -> None:
    payload = {
        str(index): [{"sliceId": c.sliceId, "points": c.points.tolist()} for c in contours]
        for index, contours in contourData.contours.items()
    }
    with open(path, "w") as f:
        json.dump(payload, f)


async def convert(args: argparse.Namespace, config: StrategyConfig) -> int:
    cache = ImageCache()
    volume = readVolume(args.labelmap, volumeId="labelmap", cache=cache)

    store = SegmentationStore(cache)
    segmentationId = args.labelmap.stem
    store.addSegmentation(
        segmentationId, RepresentationType.LABELMAP, LabelmapVolumeData(volumeId=volume.volumeId)
    )

    polySeg = PolySeg(store=store, config=config)
    try:
        surfaces = await polySeg.computeAndAddSurfaceRepresentation(segmentationId, args.segments)
        args.output.mkdir(parents=True, exist_ok=True)
        for index, mesh in surfaces.surfaces.items():
            if mesh.isEmpty:
                logger.warning(f"Segment {index}: empty surface, skipped")
                continue
            path = args.output / f"{segmentationId}_segment_{index}.obj"
            write_obj(path, mesh.vertices, mesh.triangles)
            logger.info(f"Segment {index}: {len(mesh.vertices)} vertices -> {path}")

        if args.contours:
            contourData = await polySeg.computeAndAddContourRepresentation(segmentationId, args.segments)
            path = args.output / f"{segmentationId}_contours.json"
            write_contours(path, contourData)
            logger.info(f"Contours -> {path}")
    finally:
        polySeg.close()

    return len(surfaces.surfaces)


def main() -> int:
    parser = argparse.ArgumentParser(description="Convert a labelmap to surface meshes")
    parser.add_argument("labelmap", type=Path, help="Labelmap image readable by SimpleITK")
    parser.add_argument("output", type=Path, help="Output directory")
    parser.add_argument("--segments", type=int, nargs="+", help="Segment indices (default: all present)")
    parser.add_argument("--contours", action="store_true", help="Also write per-slice contours as JSON")
    parser.add_argument("--config", type=Path, help="Strategy config YAML")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = StrategyConfig.load(args.config) if args.config else create_default_config()
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(error)
        return 1

    count = asyncio.run(convert(args, config))
    logger.info(f"Converted {count} segment(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
