"""
test_heat_aggregator.py — Unit tests for bbox validation and heat-cell grouping.

Run:
    pytest tests/test_heat_aggregator.py -v
"""

from unittest.mock import AsyncMock

import pytest

from ratemap.core.errors import InvalidBoundingBox, InvalidCategory, StorageUnavailable
from ratemap.services.geo import GridSpec
from ratemap.services.heat_aggregator import (
    HeatAggregator,
    aggregate_records,
    bbox_polygon,
    parse_bbox,
    validate_bbox,
    validate_category,
)

GRID = GridSpec()


def _record(lng, lat, **scores):
    return {"centroid": {"type": "Point", "coordinates": [lng, lat]}, "scores": scores}


# ── Bounding box ─────────────────────────────────────────────────────────────

class TestBoundingBox:

    def test_parse_valid(self):
        assert parse_bbox("-0.2,51.45,0.0,51.55") == (-0.2, 51.45, 0.0, 51.55)

    def test_parse_tolerates_spaces(self):
        assert parse_bbox(" -1, 2 ,3, 4") == (-1.0, 2.0, 3.0, 4.0)

    def test_inverted_box_rejected(self):
        with pytest.raises(InvalidBoundingBox):
            validate_bbox((10, 10, 5, 5))

    def test_inverted_latitude_only_rejected(self):
        with pytest.raises(InvalidBoundingBox):
            parse_bbox("0,10,5,5")

    def test_zero_width_rejected(self):
        with pytest.raises(InvalidBoundingBox):
            validate_bbox((1, 1, 1, 2))

    @pytest.mark.parametrize("raw", ["", "1,2,3", "1,2,3,4,5", "a,b,c,d", "1,,3,4"])
    def test_malformed_rejected(self, raw):
        with pytest.raises(InvalidBoundingBox):
            parse_bbox(raw)

    @pytest.mark.parametrize("raw", ["nan,0,1,1", "0,0,inf,1", "-inf,0,1,1"])
    def test_non_finite_rejected(self, raw):
        with pytest.raises(InvalidBoundingBox):
            parse_bbox(raw)

    @pytest.mark.parametrize("bbox", [(-181, 0, 0, 1), (0, -91, 1, 0), (0, 0, 181, 1), (0, 0, 1, 91)])
    def test_out_of_range_rejected(self, bbox):
        with pytest.raises(InvalidBoundingBox):
            validate_bbox(bbox)

    def test_whole_world_accepted(self):
        assert validate_bbox((-180, -90, 180, 90)) == (-180.0, -90.0, 180.0, 90.0)

    def test_wrong_length_sequence_rejected(self):
        with pytest.raises(InvalidBoundingBox):
            validate_bbox((1, 2, 3))

    def test_polygon_is_closed_ring(self):
        polygon = bbox_polygon((0.0, 1.0, 2.0, 3.0))
        ring = polygon["coordinates"][0]
        assert polygon["type"] == "Polygon"
        assert len(ring) == 5
        assert ring[0] == ring[-1] == [0.0, 1.0]
        assert [2.0, 3.0] in ring


class TestCategory:

    @pytest.mark.parametrize("category", ["safety", "amenities", "livability"])
    def test_known_categories(self, category):
        assert validate_category(category) == category

    @pytest.mark.parametrize("category", ["Safety", "noise", ""])
    def test_unknown_category(self, category):
        with pytest.raises(InvalidCategory):
            validate_category(category)


# ── aggregate_records ────────────────────────────────────────────────────────

class TestAggregateRecords:

    def test_three_ratings_in_one_cell(self):
        records = [
            _record(-0.12810, 51.50710, safety=6),
            _record(-0.12795, 51.50690, safety=8),
            _record(-0.12820, 51.50705, safety=10),
        ]
        features = aggregate_records(records, "safety", GRID)

        assert len(features) == 1
        feature = features[0]
        assert feature.geometry.coordinates == [-0.128, 51.507]
        assert feature.properties.count == 3
        assert feature.properties.averageScore == 8.0
        assert feature.properties.weight == pytest.approx(0.8)

    def test_separate_cells(self):
        records = [_record(0.0001, 0.0001, safety=4), _record(0.0021, 0.0001, safety=9)]
        features = aggregate_records(records, "safety", GRID)

        by_lng = {f.geometry.coordinates[0]: f for f in features}
        assert set(by_lng) == {0.0, 0.002}
        assert by_lng[0.0].properties.averageScore == 4.0
        assert by_lng[0.002].properties.weight == pytest.approx(0.9)

    def test_weight_bounds(self):
        top = aggregate_records([_record(1, 1, safety=10)], "safety", GRID)[0]
        bottom = aggregate_records([_record(2, 2, safety=0)], "safety", GRID)[0]
        assert top.properties.weight == 1.0
        assert bottom.properties.weight == 0.0

    def test_uses_requested_category(self):
        records = [_record(1, 1, safety=2, amenities=9, livability=5)]
        assert aggregate_records(records, "amenities", GRID)[0].properties.averageScore == 9.0
        assert aggregate_records(records, "livability", GRID)[0].properties.averageScore == 5.0

    def test_average_rounds_half_up_to_one_decimal(self):
        records = [_record(1, 1, safety=8), _record(1, 1, safety=8.5)]
        feature = aggregate_records(records, "safety", GRID)[0]
        assert feature.properties.averageScore == 8.3
        assert feature.properties.weight == pytest.approx(0.825)

    def test_records_missing_category_are_skipped(self):
        records = [_record(1, 1, safety=6), {"centroid": {"type": "Point", "coordinates": [1, 1]}}]
        feature = aggregate_records(records, "safety", GRID)[0]
        assert feature.properties.count == 1

    def test_empty_input(self):
        assert aggregate_records([], "safety", GRID) == []

    def test_coarser_grid_merges_cells(self):
        records = [_record(0.0001, 0.0001, safety=4), _record(0.0021, 0.0001, safety=8)]
        features = aggregate_records(records, "safety", GridSpec(cell_size=0.01, max_jitter=0.003))
        assert len(features) == 1
        assert features[0].geometry.coordinates == [0.0, 0.0]
        assert features[0].properties.averageScore == 6.0


# ── HeatAggregator ───────────────────────────────────────────────────────────

class TestHeatAggregator:

    async def test_single_storage_call_with_bbox_polygon(self):
        store = AsyncMock()
        store.find_approved.return_value = [_record(1.0002, 1.0001, safety=7)]

        features = await HeatAggregator(store, GRID).aggregate("0,0,2,2", "safety", 12)

        store.find_approved.assert_awaited_once_with(bbox_polygon((0.0, 0.0, 2.0, 2.0)))
        assert len(features) == 1
        assert features[0].geometry.coordinates == [1.0, 1.0]

    async def test_accepts_sequence_bbox(self):
        store = AsyncMock()
        store.find_approved.return_value = []
        assert await HeatAggregator(store, GRID).aggregate((0, 0, 1, 1), "safety") == []

    async def test_empty_region_returns_empty_list(self):
        store = AsyncMock()
        store.find_approved.return_value = []
        assert await HeatAggregator(store, GRID).aggregate("0,0,1,1", "safety", 10) == []

    async def test_invalid_bbox_skips_storage(self):
        store = AsyncMock()
        with pytest.raises(InvalidBoundingBox):
            await HeatAggregator(store, GRID).aggregate("10,10,5,5", "safety", 10)
        store.find_approved.assert_not_awaited()

    async def test_invalid_category_skips_storage(self):
        store = AsyncMock()
        with pytest.raises(InvalidCategory):
            await HeatAggregator(store, GRID).aggregate("0,0,1,1", "noise", 10)
        store.find_approved.assert_not_awaited()

    async def test_zoom_does_not_change_result(self):
        store = AsyncMock()
        store.find_approved.return_value = [_record(0.5, 0.5, safety=3), _record(0.7, 0.7, safety=9)]
        aggregator = HeatAggregator(store, GRID)

        low = await aggregator.aggregate("0,0,1,1", "safety", 2)
        high = await aggregator.aggregate("0,0,1,1", "safety", 20)

        key = lambda f: f.geometry.coordinates  # noqa: E731
        assert sorted(low, key=key) == sorted(high, key=key)

    async def test_storage_failure_propagates(self):
        store = AsyncMock()
        store.find_approved.side_effect = StorageUnavailable()
        with pytest.raises(StorageUnavailable):
            await HeatAggregator(store, GRID).aggregate("0,0,1,1", "safety", 10)
