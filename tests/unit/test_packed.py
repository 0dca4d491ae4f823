"""Unit tests for the packed route string decoder."""

import pytest
from bs4 import BeautifulSoup

from kyoto_transit.geo.coordinates import CoordinateResolver
from kyoto_transit.parsing.packed import PackedSegmentDecoder, extract_packed_strings


class TestPackedSegmentDecoder:
    """Test PackedSegmentDecoder."""

    @pytest.fixture
    def decoder(self):
        return PackedSegmentDecoder()

    def test_single_bus_leg(self, decoder, packed_bus_route):
        """Test decoding a one-leg bus route."""
        route = decoder.decode(packed_bus_route)

        assert route is not None
        assert len(route.legs) == 1
        leg = route.legs[0]
        assert leg.mode == "bus"
        assert leg.line == "市バス203系統"
        assert leg.from_stop == "浄土寺"
        assert leg.to_stop == "四条烏丸"
        assert leg.duration_min == 30
        assert leg.stops == 16
        assert leg.depart_time is None
        assert leg.arrive_time is None
        assert leg.fare_jpy is None

    def test_summary_from_legs(self, decoder, packed_bus_walk_route):
        route = decoder.decode(packed_bus_walk_route)
        assert route.summary.duration_min == 32
        assert route.summary.transfers == 0
        assert route.summary.depart == ""

    def test_walk_leg(self, decoder, packed_bus_walk_route):
        """Test walk distance in kilometres and duration in minutes."""
        route = decoder.decode(packed_bus_walk_route)
        walk = route.legs[1]

        assert walk.mode == "walk"
        assert walk.from_stop == "四条烏丸"
        assert walk.to_stop == "四条烏丸"
        assert walk.distance_km == 0.15
        assert walk.duration_min == 2
        assert walk.line is None

    def test_transfers_count_transit_legs(self, decoder):
        packed = (
            "station$京都$$$train$JR奈良線$$0$600$600$h$0$2$id"
            "$station$東福寺$$$walk$200$180"
            "$busstop$東福寺$$$bus$市バス208系統$$0$900$900$h$0$7$id$busstop$九条車庫前$$$"
        )
        route = decoder.decode(packed)

        assert [leg.mode for leg in route.legs] == ["train", "walk", "bus"]
        assert route.summary.transfers == 1
        assert route.legs[1].to_stop == "東福寺"
        assert route.legs[2].to_stop == "九条車庫前"

    def test_too_few_tokens(self, decoder):
        assert decoder.decode("busstop$浄土寺$$$bus$203") is None

    def test_no_legs(self, decoder):
        assert decoder.decode("busstop$浄土寺$$$busstop$四条烏丸$$$$") is None

    def test_malformed_numbers_default_to_zero(self, decoder):
        route = decoder.decode("busstop$浄土寺$$$bus$203$$x$abc$abc$h$0$n$id$busstop$銀閣寺道$$$")
        assert route.legs[0].duration_min == 0
        assert route.legs[0].stops is None

    def test_unknown_markers_skipped(self, decoder):
        route = decoder.decode("header$busstop$浄土寺$$$bus$203$$0$600$600$h$0$3$id$busstop$銀閣寺道$$$")
        assert route.legs[0].from_stop == "浄土寺"
        assert route.legs[0].duration_min == 10

    def test_coordinates_attached(self, store, packed_bus_route):
        decoder = PackedSegmentDecoder(CoordinateResolver(store))
        leg = decoder.decode(packed_bus_route).legs[0]

        assert leg.from_lat == 35.0235
        assert leg.from_lng == 135.7945
        assert leg.to_lat == 35.0037
        assert leg.to_lng == 135.7596
        assert leg.has_coordinates

    def test_unknown_place_has_no_coordinates(self, store):
        decoder = PackedSegmentDecoder(CoordinateResolver(store))
        leg = decoder.decode("busstop$存在しない$$$bus$203$$0$600$600$h$0$3$id$busstop$浄土寺$$$").legs[0]
        assert leg.from_lat is None
        assert leg.to_lat == 35.0235


class TestPageExtraction:
    def test_extract_packed_strings(self, detailed_schedule_html, packed_bus_walk_route):
        soup = BeautifulSoup(detailed_schedule_html, "html.parser")
        assert extract_packed_strings(soup) == [packed_bus_walk_route]

    def test_only_rt_inputs_in_result_form(self, packed_bus_route):
        html = f"""
        <input name="rt0" value="{packed_bus_route}">
        <form id="resultInfo">
          <input name="rt0" value="{packed_bus_route}">
          <input name="mode" value="t">
          <input name="rt1" value="">
          <input name="rt2" value="short$route">
        </form>
        """
        soup = BeautifulSoup(html, "html.parser")
        assert extract_packed_strings(soup) == [packed_bus_route, "short$route"]

    def test_no_form(self):
        assert extract_packed_strings(BeautifulSoup("<p>none</p>", "html.parser")) == []

    def test_decode_page_skips_undecodable(self, packed_bus_route):
        html = f"""
        <form id="resultInfo">
          <input name="rt0" value="short$route">
          <input name="rt1" value="{packed_bus_route}">
        </form>
        """
        routes = PackedSegmentDecoder().decode_page(BeautifulSoup(html, "html.parser"))
        assert len(routes) == 1
        assert routes[0].legs[0].stops == 16
