"""Tests for VoxelValue access over volume and stack buffers, and history records."""

import numpy as np
import pytest
from SegmentEditorStrategiesLib import (
    OutOfBounds,
    StackVoxelValue,
    VolumeVoxelValue,
    acceptHistory,
    historyVoxelValue,
    rejectHistory,
)
from SegmentEditorStrategiesLib.VoxelValue import LABELMAP_VALUE_RANGE


@pytest.fixture
def volume_value():
    """4x3x2 (i, j, k) labelmap with values 0."""
    return VolumeVoxelValue(np.zeros(24, dtype=np.uint8), (4, 3, 2), LABELMAP_VALUE_RANGE)


@pytest.fixture
def stack_value():
    """Three 3x4 (rows x columns) slices."""
    buffers = [np.zeros((3, 4), dtype=np.uint8) for _ in range(3)]
    return StackVoxelValue(buffers, ["a", "b", "c"], LABELMAP_VALUE_RANGE)


class TestPositionArithmetic:
    """Index <-> (i, j, k) mapping and bounds."""

    def test_flat_index_layout(self, volume_value):
        assert volume_value.toIndex((1, 0, 0)) == 1
        assert volume_value.toIndex((0, 1, 0)) == 4
        assert volume_value.toIndex((0, 0, 1)) == 12
        assert volume_value.toIndex((3, 2, 1)) == 23

    def test_to_ijk_inverts_to_index(self, volume_value):
        for index in (0, 5, 13, 23):
            assert volume_value.toIndex(volume_value.toIJK(index)) == index

    def test_out_of_bounds_index_raises(self, volume_value):
        with pytest.raises(OutOfBounds):
            volume_value.set((4, 0, 0), 1)
        with pytest.raises(OutOfBounds):
            volume_value.get((0, -1, 0))
        with pytest.raises(OutOfBounds):
            volume_value.setIndex(24, 1)

    def test_out_of_bounds_is_an_index_error(self, volume_value):
        with pytest.raises(IndexError):
            volume_value.getIndex(100)

    def test_value_outside_labelmap_range_raises(self, volume_value):
        with pytest.raises(ValueError):
            volume_value.set((0, 0, 0), 256)
        with pytest.raises(ValueError):
            volume_value.set((0, 0, 0), -1)
        assert volume_value.get((0, 0, 0)) == 0

    def test_is_in_bounds(self, volume_value):
        assert volume_value.isInBounds((3, 2, 1))
        assert not volume_value.isInBounds((3, 3, 1))


class TestVolumeVoxelValue:
    """Reads and writes through a flat buffer."""

    def test_set_writes_into_shared_buffer(self):
        buffer = np.zeros(24, dtype=np.uint8)
        value = VolumeVoxelValue(buffer, (4, 3, 2))
        value.set((2, 1, 1), 7)
        assert buffer[2 + 4 + 12] == 7
        assert value.get((2, 1, 1)) == 7

    def test_buffer_size_mismatch_raises(self):
        with pytest.raises(ValueError):
            VolumeVoxelValue(np.zeros(10), (4, 3, 2))

    def test_modified_slices_are_recorded_once(self, volume_value):
        volume_value.set((0, 0, 1), 1)
        volume_value.set((1, 0, 1), 1)
        volume_value.set((1, 0, 1), 2)
        assert volume_value.getArrayOfSlices() == [1]

        volume_value.set((0, 0, 0), 3)
        assert volume_value.getArrayOfSlices() == [0, 1]

    def test_get_region_matches_array_slicing(self):
        data = np.arange(24, dtype=np.float32)
        value = VolumeVoxelValue(data, (4, 3, 2))
        region = value.getRegion(((1, 2), (0, 1), (1, 1)))
        expected = data.reshape(2, 3, 4)[1:2, 0:2, 1:3]
        np.testing.assert_array_equal(region, expected)


class TestStackVoxelValue:
    """Reads and writes through per-slice buffers."""

    def test_dimensions_from_slices(self, stack_value):
        assert stack_value.dimensions == (4, 3, 3)

    def test_set_writes_into_slice_buffer(self, stack_value):
        stack_value.set((3, 2, 1), 5)
        assert stack_value.sliceBuffers[1][2, 3] == 5
        assert stack_value.sliceBuffers[0].sum() == 0
        assert stack_value.sliceBuffers[2].sum() == 0

    def test_slice_lookup_by_image_id(self, stack_value):
        assert stack_value.getSliceIndex("c") == 2
        assert stack_value.getImageId(1) == "b"
        with pytest.raises(OutOfBounds):
            stack_value.getSliceIndex("missing")

    def test_modified_image_ids(self, stack_value):
        stack_value.set((0, 0, 2), 1)
        stack_value.set((0, 0, 0), 1)
        assert stack_value.getArrayOfSlices() == [0, 2]
        assert stack_value.getArrayOfImageIds() == ["a", "c"]

    def test_mismatched_slice_shapes_raise(self):
        with pytest.raises(ValueError):
            StackVoxelValue([np.zeros((3, 4)), np.zeros((4, 3))], ["a", "b"])

    def test_get_region_stacks_slices(self, stack_value):
        stack_value.set((1, 1, 0), 3)
        stack_value.set((1, 1, 2), 4)
        region = stack_value.getRegion(((1, 1), (1, 1), (0, 2)))
        assert region.shape == (3, 1, 1)
        assert region.reshape(-1).tolist() == [3, 0, 4]


class TestHistoryVoxelValue:
    """Sparse record of overwritten values, resolved by accept or reject."""

    def test_records_original_only_on_first_write(self, volume_value):
        volume_value.set((1, 1, 0), 4)
        history = historyVoxelValue(volume_value)
        index = volume_value.toIndex((1, 1, 0))

        history.setIndex(index, 255)
        history.setIndex(index, 9)

        assert history.getOriginal(index) == 4
        assert len(history) == 1
        assert volume_value.get((1, 1, 0)) == 9

    def test_reads_delegate_to_base(self, volume_value):
        volume_value.set((2, 2, 1), 6)
        history = historyVoxelValue(volume_value)
        assert history.get((2, 2, 1)) == 6

    def test_reject_restores_every_original(self, volume_value):
        volume_value.set((0, 0, 0), 2)
        before = volume_value.scalarData.copy()
        history = historyVoxelValue(volume_value)

        for ijk in [(0, 0, 0), (1, 0, 0), (3, 2, 1)]:
            history.set(ijk, 255)

        restored = rejectHistory(history)

        assert restored == 3
        np.testing.assert_array_equal(volume_value.scalarData, before)
        assert len(history) == 0
        assert history.getArrayOfSlices() == []

    def test_reject_empty_history_is_noop(self, volume_value):
        history = historyVoxelValue(volume_value)
        assert rejectHistory(history) == 0
        assert volume_value.scalarData.sum() == 0

    def test_accept_rewrites_preview_values(self, volume_value):
        volume_value.set((2, 0, 0), 3)
        history = historyVoxelValue(volume_value)
        history.set((0, 0, 0), 255)
        history.set((1, 0, 0), 255)
        # Written, then overwritten with a real value
        history.set((2, 0, 0), 255)
        history.set((2, 0, 0), 3)

        rewritten = acceptHistory(history, previewValue=255, finalValue=1)

        assert rewritten == 2
        assert volume_value.get((0, 0, 0)) == 1
        assert volume_value.get((1, 0, 0)) == 1
        assert volume_value.get((2, 0, 0)) == 3
        assert 255 not in volume_value.scalarData
        assert len(history) == 0

    def test_accept_without_preview_value_keeps_writes(self, volume_value):
        history = historyVoxelValue(volume_value)
        history.set((0, 0, 1), 2)
        assert acceptHistory(history) == 0
        assert volume_value.get((0, 0, 1)) == 2
        assert len(history) == 0

    def test_history_over_stack(self, stack_value):
        history = historyVoxelValue(stack_value)
        history.set((1, 1, 1), 255)
        assert history.getArrayOfSlices() == [1]
        assert stack_value.getArrayOfImageIds() == ["b"]
        rejectHistory(history)
        assert all(buffer.sum() == 0 for buffer in stack_value.sliceBuffers)
