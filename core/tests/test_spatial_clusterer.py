"""
Tests para core/services/spatial_clusterer.py
"""
import asyncio

import pytest
from django.core.exceptions import ValidationError

from core.models_analytics import GeocodeResult, GeoZone
from core.services.spatial_clusterer import SpatialClusterer


class FakeGeocoder:
    """Resuelve solo los ids conocidos, como un lote con fallos parciales."""

    def __init__(self, places):
        self.places = places
        self.requested = []

    async def resolve_batch(self, points, cancel_token=None):
        self.requested = [p['id'] for p in points]
        return {p['id']: self.places[p['id']] for p in points if p['id'] in self.places}


def zone(key, count, city=None, region=None):
    lat, lng = (float(x) for x in key.split(','))
    place = GeocodeResult(city=city, region=region, country='Togo') if (city or region) else None
    return GeoZone(cell_key=key, center_lat=lat, center_lng=lng, count=count,
                   percentage_of_geo_tagged=0, place=place)


class TestCluster:

    def test_dense_cluster_and_outlier(self, make_response):
        responses = [make_response(lat=6.1301 + i * 0.0002, lng=1.2201) for i in range(5)]
        responses.append(make_response(lat=16.13, lng=1.22))

        zones = SpatialClusterer.cluster(responses, precision_decimals=2)

        assert len(zones) == 2
        assert zones[0].count == 5
        assert zones[0].cell_key == '6.13,1.22'
        assert zones[0].percentage_of_geo_tagged == 83
        assert zones[1].count == 1
        assert zones[1].percentage_of_geo_tagged == 17

    def test_invalid_coordinates_ignored(self, make_response):
        responses = [
            make_response(lat=91.0, lng=0.0),
            make_response(lat=0.0, lng=181.0),
            make_response(lat=float('nan'), lng=0.0),
            make_response(),
            make_response(lat=10.0, lng=10.0),
        ]
        zones = SpatialClusterer.cluster(responses)
        assert [z.count for z in zones] == [1]
        assert zones[0].percentage_of_geo_tagged == 100

    def test_half_up_rounding(self, make_response):
        zones = SpatialClusterer.cluster([make_response(lat=6.125, lng=1.135)], precision_decimals=2)
        assert zones[0].cell_key == '6.13,1.14'

    def test_ties_keep_first_seen_order(self, make_response):
        responses = [
            make_response(lat=2.0, lng=2.0),
            make_response(lat=1.0, lng=1.0),
        ]
        zones = SpatialClusterer.cluster(responses)
        assert [z.cell_key for z in zones] == ['2.00,2.00', '1.00,1.00']

    def test_four_decimals(self, make_response):
        responses = [make_response(lat=6.13001, lng=1.22001), make_response(lat=6.13009, lng=1.22001)]
        zones = SpatialClusterer.cluster(responses, precision_decimals=4)
        assert [z.cell_key for z in zones] == ['6.1300,1.2200', '6.1301,1.2200']

    def test_no_geo_tagged_responses(self, make_response):
        assert SpatialClusterer.cluster([make_response()]) == []

    def test_invalid_precision_raises(self):
        with pytest.raises(ValidationError):
            SpatialClusterer.cluster([], precision_decimals=9)
        with pytest.raises(ValidationError):
            SpatialClusterer.cluster([], precision_decimals='2')


class TestNameZones:

    def test_top_n_named_and_unresolved_keep_fallback(self):
        zones = [zone('6.13,1.22', 5), zone('9.55,1.19', 3), zone('10.00,1.00', 1)]
        geocoder = FakeGeocoder({'6.13,1.22': GeocodeResult(city='Lomé', region='Maritime', country='Togo')})

        named = asyncio.run(SpatialClusterer.name_zones(zones, geocoder, top_n=2))

        assert geocoder.requested == ['6.13,1.22', '9.55,1.19']
        assert named[0].label == 'Lomé, Maritime, Togo'
        assert named[1].place is None
        assert named[1].label == '9.5500°, 1.1900°'
        # las zonas originales no se modifican
        assert zones[0].place is None

    def test_without_geocoder(self):
        zones = [zone('6.13,1.22', 5)]
        assert asyncio.run(SpatialClusterer.name_zones(zones, None)) == zones


class TestSummarize:

    def test_city_and_region_rankings(self):
        zones = [
            zone('6.13,1.22', 6, city='Lomé', region='Maritime'),
            zone('6.14,1.23', 2, city='Lomé', region='Maritime'),
            zone('9.55,1.19', 2, city='Kara', region='Kara'),
            zone('0.00,0.00', 5),
        ]
        summary = SpatialClusterer.summarize(zones)

        assert summary.geo_tagged == 15
        assert summary.zone_count == 4
        assert [(c.name, c.count, c.percentage) for c in summary.by_city] == [('Lomé', 8, 80), ('Kara', 2, 20)]
        assert [r.name for r in summary.by_region] == ['Maritime', 'Kara']

    def test_hotspot_levels(self):
        zones = [
            zone('1.00,1.00', 45, city='A'),
            zone('2.00,2.00', 30, city='B'),
            zone('3.00,3.00', 20, city='C'),
            zone('4.00,4.00', 5, city='D'),
        ]
        hotspots = SpatialClusterer.summarize(zones).hotspots

        assert [(h.name, h.level) for h in hotspots] == [('A', 'high'), ('B', 'medium'), ('C', 'medium')]

    def test_no_named_zones(self):
        summary = SpatialClusterer.summarize([zone('1.00,1.00', 3)])
        assert summary.by_city == ()
        assert summary.hotspots == ()
