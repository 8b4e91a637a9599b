"""Tests for representation conversion and the PolySeg entry point."""

import asyncio

import numpy as np
import pytest
from SegmentEditorStrategiesLib import (
    ContourSegmentationData,
    Events,
    LabelmapStackData,
    LabelmapVolumeData,
    MissingViewportContext,
    NoConvertiblePath,
    NotFound,
    PolySeg,
    RepresentationCache,
    RepresentationType,
    SegmentationStore,
    SkimagePolygonExtractor,
    Viewport,
    ViewportType,
    computeContourData,
    computeLabelmapData,
    computeSurfaceData,
    triggerSegmentationDataModified,
)
from SegmentEditorStrategiesLib.SurfaceComputation import inferContourGeometry
from test_fixtures.synthetic_segmentation import (
    create_cube_labelmap,
    create_square_contour,
    create_stack,
    create_volume,
)

pytestmark = pytest.mark.conversion


@pytest.fixture
def store(cache):
    return SegmentationStore(cache)


@pytest.fixture
def labelmap_segmentation(cache, store):
    """Segmentation "seg" with a 3x3x3 cube of segment 1 at voxels 3..5."""
    create_cube_labelmap(cache)
    store.addSegmentation("seg", RepresentationType.LABELMAP, LabelmapVolumeData(volumeId="labelmap"))
    return store.getSegmentation("seg")


@pytest.fixture
def contour_segmentation(store):
    """Segmentation "contours": segment 1 on planes z = 2, 3, 4 and segment 2 on z = 3."""
    contours = {
        1: [create_square_contour(f"z{z}", z) for z in (2.0, 3.0, 4.0)],
        2: [create_square_contour("z3", 3.0, low=10.0, high=14.0)],
    }
    store.addSegmentation("contours", RepresentationType.CONTOUR, ContourSegmentationData(contours=contours))
    return store.getSegmentation("contours")


@pytest.fixture
def polyseg(store, event_bus):
    polyseg = PolySeg(store=store, events=event_bus)
    yield polyseg
    polyseg.close()


class FailingExtractor:
    def extractSurface(self, mask, spacing, origin, direction):
        raise RuntimeError("extraction failed")


class AsyncExtractor(SkimagePolygonExtractor):
    """Extractor whose surface extraction is a coroutine."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    async def extractSurface(self, mask, spacing, origin, direction):
        self.calls += 1
        await asyncio.sleep(0)
        return super().extractSurface(mask, spacing, origin, direction)


class EditingExtractor(AsyncExtractor):
    """Async extractor that runs ``edit`` while its first extraction is suspended."""

    def __init__(self, edit):
        super().__init__()
        self.edit = edit

    async def extractSurface(self, mask, spacing, origin, direction):
        if self.calls == 0:
            self.edit()
        return await super().extractSurface(mask, spacing, origin, direction)


class TestSegmentationStore:
    def test_first_representation_is_authoritative(self, store, contour_segmentation):
        store.addRepresentationData("contours", RepresentationType.SURFACE, None)
        assert contour_segmentation.authoritativeRepresentation == RepresentationType.CONTOUR

    def test_unknown_segmentation_raises(self, store):
        with pytest.raises(NotFound):
            store.getSegmentation("missing")

    def test_unique_indices_skip_background_and_preview(self, cache, store, labelmap_segmentation):
        labelmap = cache.getVolume("labelmap").getScalarDataArray()
        labelmap[0, 0, 0] = 255
        labelmap[9, 9, 9] = 4
        assert store.getUniqueSegmentIndices("seg") == [1, 4]

    def test_unique_indices_from_contours(self, store, contour_segmentation):
        contour_segmentation.getRepresentation(RepresentationType.CONTOUR).contours[3] = []
        assert store.getUniqueSegmentIndices("contours") == [1, 2]

    def test_segmentation_without_data_has_no_indices(self, store):
        store.addSegmentation("empty")
        assert store.getUniqueSegmentIndices("empty") == []

    def test_remove_emits_event_once(self, cache, event_bus):
        store = SegmentationStore(cache, events=event_bus)
        removed = []
        event_bus.subscribe(Events.SEGMENTATION_REMOVED, lambda segmentationId: removed.append(segmentationId))
        store.addSegmentation("seg")

        store.removeSegmentation("seg")
        store.removeSegmentation("seg")

        assert removed == ["seg"]
        assert not store.hasSegmentation("seg")

    def test_remove_derived_keeps_authoritative(self, store, contour_segmentation):
        store.addRepresentationData("contours", RepresentationType.SURFACE, None)
        store.addRepresentationData("contours", RepresentationType.LABELMAP, None)

        dropped = store.removeDerivedRepresentations("contours")

        assert set(dropped) == {RepresentationType.SURFACE, RepresentationType.LABELMAP}
        assert list(contour_segmentation.representationData) == [RepresentationType.CONTOUR]


class TestSurfaceComputation:
    def test_surface_from_volume_labelmap(self, store, labelmap_segmentation):
        surfaces = asyncio.run(computeSurfaceData("seg", store))

        assert list(surfaces.surfaces) == [1]
        mesh = surfaces.surfaces[1]
        assert not mesh.isEmpty
        assert mesh.vertices.shape[1] == 3
        assert mesh.vertices.min() >= 2.5 - 1e-6
        assert mesh.vertices.max() <= 5.5 + 1e-6

    def test_explicit_segment_indices(self, cache, store, labelmap_segmentation):
        cache.getVolume("labelmap").getScalarDataArray()[8, 8, 8] = 2

        surfaces = asyncio.run(computeSurfaceData("seg", store, segmentIndices=[2]))

        assert list(surfaces.surfaces) == [2]

    def test_absent_segment_gives_empty_mesh(self, store, labelmap_segmentation):
        surfaces = asyncio.run(computeSurfaceData("seg", store, segmentIndices=[7]))
        assert surfaces.surfaces[7].isEmpty

    def test_surface_from_contours(self, store, contour_segmentation):
        surfaces = asyncio.run(computeSurfaceData("contours", store))

        assert set(surfaces.surfaces) == {1, 2}
        assert not surfaces.surfaces[1].isEmpty
        assert not surfaces.surfaces[2].isEmpty
        # Segment 2 lies entirely in the far corner
        assert surfaces.surfaces[2].vertices[:, 0].min() > 8.0

    def test_surface_from_stack_labelmap(self, cache, store):
        _, reference_map = create_stack(cache, num_slices=5)
        for image_id in ("img1", "img2", "img3"):
            cache.getImage(reference_map[image_id]).pixelData[3:6, 3:6] = 1
        store.addSegmentation("stack", RepresentationType.LABELMAP, LabelmapStackData(reference_map))

        surfaces = asyncio.run(computeSurfaceData("stack", store))

        vertices = surfaces.surfaces[1].vertices
        assert vertices[:, 2].min() >= 0.5 - 1e-6
        assert vertices[:, 2].max() <= 3.5 + 1e-6

    def test_authoritative_labelmap_wins_over_derived_contours(self, store, labelmap_segmentation):
        # Contours of segment 1 only, far from the labelmap cube
        stale = {1: [create_square_contour("z8", 8.0, low=7.0, high=9.0)]}
        store.addRepresentationData("seg", RepresentationType.CONTOUR, ContourSegmentationData(contours=stale))

        surfaces = asyncio.run(computeSurfaceData("seg", store))

        assert not surfaces.surfaces[1].isEmpty
        assert surfaces.surfaces[1].vertices.max() <= 5.5 + 1e-6

    def test_no_source_representation(self, store):
        store.addSegmentation("empty")
        with pytest.raises(NoConvertiblePath):
            asyncio.run(computeSurfaceData("empty", store))

    def test_contour_geometry_inference(self, contour_segmentation):
        geometry = inferContourGeometry(contour_segmentation.getRepresentation(RepresentationType.CONTOUR))
        assert geometry.spacing == (1.0, 1.0, 1.0)
        assert geometry.origin == (1.0, 1.0, 1.0)
        assert geometry.dimensions == (15, 15, 5)


class TestLabelmapComputation:
    def test_requires_viewport(self, store, contour_segmentation):
        with pytest.raises(MissingViewportContext):
            asyncio.run(computeLabelmapData("contours", store))

    def test_requires_contours(self, store, labelmap_segmentation, volume_viewport):
        with pytest.raises(NoConvertiblePath):
            asyncio.run(computeLabelmapData("seg", store, viewport=volume_viewport))

    def test_volume_labelmap_from_contours(self, cache, store, volume_viewport):
        create_volume(cache, "ct")
        contours = {1: [create_square_contour("z4", 4.0)]}
        store.addSegmentation("c", RepresentationType.CONTOUR, ContourSegmentationData(contours=contours))

        labelmap = asyncio.run(computeLabelmapData("c", store, viewport=volume_viewport))

        assert isinstance(labelmap, LabelmapVolumeData)
        assert labelmap.referencedVolumeId == "ct"
        array = cache.getVolume(labelmap.volumeId).getScalarDataArray()
        assert array[4, 4, 4] == 1
        assert array[4, 0, 0] == 0
        assert np.count_nonzero(array[3]) == 0
        assert np.count_nonzero(array[5]) == 0

    def test_stack_labelmap_from_contours(self, cache, store):
        image_ids, _ = create_stack(cache, num_slices=5)
        viewport = Viewport(viewportId="stack", type=ViewportType.STACK, imageIds=image_ids)
        contours = {1: [create_square_contour("z2", 2.0)]}
        store.addSegmentation("c", RepresentationType.CONTOUR, ContourSegmentationData(contours=contours))

        labelmap = asyncio.run(computeLabelmapData("c", store, viewport=viewport))

        assert isinstance(labelmap, LabelmapStackData)
        assert list(labelmap.imageIdReferenceMap) == image_ids
        assert cache.getImage(labelmap.imageIdReferenceMap["img2"]).pixelData[4, 4] == 1
        for image_id in ("img0", "img1", "img3", "img4"):
            assert cache.getImage(labelmap.imageIdReferenceMap[image_id]).pixelData.sum() == 0


class TestContourComputation:
    def test_contours_per_slice(self, store, labelmap_segmentation):
        contourData = asyncio.run(computeContourData("seg", store))

        contours = contourData.contours[1]
        assert sorted(c.sliceId for c in contours) == ["labelmap:3", "labelmap:4", "labelmap:5"]
        for contour in contours:
            k = int(contour.sliceId.split(":")[1])
            np.testing.assert_allclose(contour.points[:, 2], k)
            assert contour.points[:, :2].min() >= 2.5 - 1e-6
            assert contour.points[:, :2].max() <= 5.5 + 1e-6
        assert contourData.referenceGeometry.dimensions == (10, 10, 10)

    def test_requires_labelmap(self, store, contour_segmentation):
        with pytest.raises(NoConvertiblePath):
            asyncio.run(computeContourData("contours", store))


class TestPolySeg:
    def test_can_compute(self, polyseg, labelmap_segmentation, contour_segmentation, store):
        store.addSegmentation("empty")
        assert polyseg.canComputeRequestedRepresentation("seg", RepresentationType.SURFACE)
        assert polyseg.canComputeRequestedRepresentation("seg", RepresentationType.CONTOUR)
        assert polyseg.canComputeRequestedRepresentation("contours", RepresentationType.LABELMAP)
        assert not polyseg.canComputeRequestedRepresentation("empty", RepresentationType.SURFACE)

    def test_authoritative_representation_returned_as_is(self, polyseg, labelmap_segmentation):
        labelmap = labelmap_segmentation.getRepresentation(RepresentationType.LABELMAP)
        assert asyncio.run(polyseg.computeAndAddLabelmapRepresentation("seg")) is labelmap
        assert len(polyseg.representationCache) == 0

    def test_surface_is_cached_and_added(self, polyseg, labelmap_segmentation, event_bus):
        added = []
        event_bus.subscribe(
            Events.SEGMENTATION_REPRESENTATION_ADDED,
            lambda segmentationId, representationType: added.append((segmentationId, representationType)),
        )

        first = asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg"))
        second = asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg"))

        assert second is first
        assert labelmap_segmentation.getRepresentation(RepresentationType.SURFACE) is first
        assert added == [("seg", RepresentationType.SURFACE)]
        assert polyseg.representationCache.stats.hits == 1

    def test_data_modified_invalidates_cache(self, cache, polyseg, labelmap_segmentation, event_bus):
        first = asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg"))

        cache.getVolume("labelmap").getScalarDataArray()[8, 8, 8] = 2
        triggerSegmentationDataModified("seg", [8], bus=event_bus)
        second = asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg"))

        assert second is not first
        assert set(second.surfaces) == {1, 2}

    def test_other_segmentation_edits_keep_cache(self, polyseg, labelmap_segmentation, event_bus):
        first = asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg"))
        triggerSegmentationDataModified("other", [0], bus=event_bus)
        assert asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg")) is first

    def test_surface_after_edit_uses_committed_labelmap(self, cache, polyseg, labelmap_segmentation, event_bus):
        asyncio.run(polyseg.computeAndAddContourRepresentation("seg"))
        labelmap = cache.getVolume("labelmap").getScalarDataArray()
        labelmap[labelmap == 1] = 0
        labelmap[6:9, 6:9, 6:9] = 2
        triggerSegmentationDataModified("seg", [3, 4, 5, 6, 7, 8], bus=event_bus)

        surfaces = asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg"))

        assert list(surfaces.surfaces) == [2]
        assert not surfaces.surfaces[2].isEmpty
        assert not labelmap_segmentation.hasRepresentation(RepresentationType.CONTOUR)

    def test_edit_during_conversion_is_not_cached(self, cache, store, event_bus, labelmap_segmentation):
        def edit():
            cache.getVolume("labelmap").getScalarDataArray()[8, 8, 8] = 1
            triggerSegmentationDataModified("seg", [8], bus=event_bus)

        extractor = EditingExtractor(edit)
        polyseg = PolySeg(store=store, extractor=extractor, events=event_bus)

        first = asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg"))
        assert not labelmap_segmentation.hasRepresentation(RepresentationType.SURFACE)
        second = asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg"))

        assert extractor.calls == 2
        assert second is not first
        assert labelmap_segmentation.getRepresentation(RepresentationType.SURFACE) is second
        polyseg.close()

    def test_edit_of_derived_labelmap_makes_it_authoritative(
        self, cache, polyseg, contour_segmentation, volume_viewport, event_bus
    ):
        create_volume(cache, "ct")
        labelmap = asyncio.run(
            polyseg.computeAndAddLabelmapRepresentation("contours", viewport=volume_viewport)
        )

        cache.getVolume(labelmap.volumeId).getScalarDataArray()[8, 8, 8] = 3
        triggerSegmentationDataModified("contours", [8], bus=event_bus)

        assert contour_segmentation.authoritativeRepresentation == RepresentationType.LABELMAP
        assert not contour_segmentation.hasRepresentation(RepresentationType.CONTOUR)
        assert asyncio.run(polyseg.computeAndAddLabelmapRepresentation("contours")) is labelmap
        assert polyseg.store.getUniqueSegmentIndices("contours") == [1, 3]

    def test_removed_segmentation_drops_cache(self, cache, event_bus):
        create_cube_labelmap(cache)
        polyseg = PolySeg(cache=cache, events=event_bus)
        polyseg.store.addSegmentation("seg", RepresentationType.LABELMAP, LabelmapVolumeData(volumeId="labelmap"))
        asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg"))
        assert len(polyseg.representationCache) == 1

        polyseg.store.removeSegmentation("seg")

        assert len(polyseg.representationCache) == 0
        polyseg.close()

    def test_failed_conversion_caches_nothing(self, store, event_bus, labelmap_segmentation):
        polyseg = PolySeg(store=store, extractor=FailingExtractor(), events=event_bus)

        with pytest.raises(RuntimeError, match="extraction failed"):
            asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg"))

        assert len(polyseg.representationCache) == 0
        assert not labelmap_segmentation.hasRepresentation(RepresentationType.SURFACE)
        polyseg.close()

    def test_async_extractor(self, store, event_bus, labelmap_segmentation):
        extractor = AsyncExtractor()
        polyseg = PolySeg(store=store, extractor=extractor, events=event_bus)

        surfaces = asyncio.run(polyseg.computeAndAddSurfaceRepresentation("seg"))

        assert extractor.calls == 1
        assert not surfaces.surfaces[1].isEmpty
        polyseg.close()

    def test_labelmap_from_contours_via_polyseg(self, cache, polyseg, contour_segmentation, volume_viewport):
        create_volume(cache, "ct")

        labelmap = asyncio.run(
            polyseg.computeAndAddLabelmapRepresentation("contours", viewport=volume_viewport)
        )

        assert contour_segmentation.getRepresentation(RepresentationType.LABELMAP) is labelmap
        # Segment 2 lies outside the 10x10x10 grid of "ct"
        array = cache.getVolume(labelmap.volumeId).getScalarDataArray()
        assert set(np.unique(array)) == {0, 1}
        # Authoritative contours still list both segments
        assert polyseg.store.getUniqueSegmentIndices("contours") == [1, 2]

    def test_close_unsubscribes(self, store, event_bus):
        before = event_bus.listenerCount(Events.SEGMENTATION_DATA_MODIFIED)
        polyseg = PolySeg(store=store, events=event_bus)
        assert event_bus.listenerCount(Events.SEGMENTATION_DATA_MODIFIED) == before + 1
        assert event_bus.listenerCount(Events.SEGMENTATION_REMOVED) == 1
        polyseg.close()
        assert event_bus.listenerCount(Events.SEGMENTATION_DATA_MODIFIED) == before
        assert event_bus.listenerCount(Events.SEGMENTATION_REMOVED) == 0


class TestRepresentationCache:
    def test_hit_and_miss_statistics(self):
        cache = RepresentationCache()
        assert cache.get("seg", RepresentationType.SURFACE) is None
        cache.put("seg", RepresentationType.SURFACE, "mesh", computeTimeMs=5.0)
        assert cache.get("seg", "Surface") == "mesh"
        assert cache.stats.hitRate == pytest.approx(0.5)
        assert cache.stats.total_compute_time_ms == pytest.approx(5.0)

    def test_invalidate_only_drops_one_segmentation(self):
        cache = RepresentationCache()
        cache.put("a", RepresentationType.SURFACE, 1)
        cache.put("a", RepresentationType.CONTOUR, 2)
        cache.put("b", RepresentationType.SURFACE, 3)

        assert cache.invalidate("a") == 2
        assert not cache.contains("a", RepresentationType.SURFACE)
        assert cache.contains("b", RepresentationType.SURFACE)
        assert cache.stats.invalidations == 1

    def test_modification_bumps_version(self):
        cache = RepresentationCache()
        cache.put("a", RepresentationType.SURFACE, 1)

        cache.onSegmentationDataModified("a", [0])
        cache.onSegmentationDataModified("a", [1])

        assert cache.version("a") == 2
        assert cache.version("b") == 0
        assert not cache.contains("a", RepresentationType.SURFACE)
