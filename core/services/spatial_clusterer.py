"""core/services/spatial_clusterer.py"""
import logging
from dataclasses import replace
from typing import List, Optional

from core.models_analytics import GeoSummary, GeoZone, Hotspot, NamedCount
from core.utils.helpers import is_valid_coordinate, percent, round_half_up
from core.validators import ReportInputValidator

logger = logging.getLogger(__name__)


class SpatialClusterer:
    """
    Agrupa respuestas geolocalizadas en celdas de precisión fija.

    2 decimales ~ 1 km (zonas del reporte), 4 decimales ~ 11 m (deduplicación
    por punto). Las celdas se ordenan por densidad y las más pobladas se
    nombran con el geocodificador.
    """

    HIGH_HOTSPOT_PCT = 40
    MEDIUM_HOTSPOT_RANGE = (20, 40)
    TOP_CITIES = 10
    TOP_REGIONS = 5

    @staticmethod
    def _rounded(value: float, precision: int) -> float:
        # + 0.0 normaliza -0.0
        return round_half_up(value, precision) + 0.0

    @classmethod
    def cluster(cls, responses, precision_decimals: int = 2) -> List[GeoZone]:
        precision = ReportInputValidator.validate_precision(precision_decimals)

        cells = {}
        total = 0
        for response in responses:
            location = getattr(response, 'location', None)
            if location is None or not is_valid_coordinate(location.lat, location.lng):
                continue
            total += 1
            lat = cls._rounded(location.lat, precision)
            lng = cls._rounded(location.lng, precision)
            key = f"{lat:.{precision}f},{lng:.{precision}f}"
            if key in cells:
                cells[key][2] += 1
            else:
                cells[key] = [lat, lng, 1]

        # orden estable: empates en orden de primera aparición
        ordered = sorted(cells.items(), key=lambda item: item[1][2], reverse=True)
        return [
            GeoZone(
                cell_key=key,
                center_lat=lat,
                center_lng=lng,
                count=count,
                percentage_of_geo_tagged=percent(count, total),
            )
            for key, (lat, lng, count) in ordered
        ]

    @staticmethod
    async def name_zones(zones, geocoder, top_n: int = 20, cancel_token=None) -> List[GeoZone]:
        """
        Returns new zones where the top ``top_n`` carry a ``place``.

        Zones the geocoder could not resolve (failure, timeout, batch limit,
        cancellation) are returned unchanged and keep the coordinate label.
        """
        zones = list(zones)
        if not zones or geocoder is None:
            return zones

        points = [
            {'id': zone.cell_key, 'lat': zone.center_lat, 'lng': zone.center_lng}
            for zone in zones[:top_n]
        ]
        places = await geocoder.resolve_batch(points, cancel_token=cancel_token)
        logger.debug(f"Named {len(places)} of {len(points)} geo zones")
        return [
            replace(zone, place=places[zone.cell_key]) if zone.cell_key in places else zone
            for zone in zones
        ]

    @classmethod
    def _ranking(cls, counts, total, limit):
        ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]
        return tuple(
            NamedCount(name=name, count=count, percentage=percent(count, total))
            for name, count in ordered
        )

    @classmethod
    def summarize(cls, zones, geo_tagged: Optional[int] = None) -> GeoSummary:
        """
        Panel geográfico: ranking por ciudad y región de las zonas nombradas
        y zonas calientes.

        Los porcentajes se calculan sobre las respuestas de zonas con nombre.
        """
        zones = list(zones)
        if geo_tagged is None:
            geo_tagged = sum(zone.count for zone in zones)

        by_city, by_region = {}, {}
        named_total = 0
        for zone in zones:
            if zone.place is None:
                continue
            named_total += zone.count
            if zone.place.city:
                by_city[zone.place.city] = by_city.get(zone.place.city, 0) + zone.count
            if zone.place.region:
                by_region[zone.place.region] = by_region.get(zone.place.region, 0) + zone.count

        cities = cls._ranking(by_city, named_total, cls.TOP_CITIES)
        regions = cls._ranking(by_region, named_total, cls.TOP_REGIONS)

        hotspots = []
        if cities and cities[0].percentage > cls.HIGH_HOTSPOT_PCT:
            hotspots.append(Hotspot(
                name=cities[0].name,
                description=(
                    f"Very high potential area: {cities[0].percentage}% of respondents. "
                    f"Strong concentration of consumers."
                ),
                level='high',
            ))
        low, high = cls.MEDIUM_HOTSPOT_RANGE
        for city in cities[:3]:
            if low <= city.percentage <= high:
                hotspots.append(Hotspot(
                    name=city.name,
                    description=f"Promising area: {city.percentage}% of the market. Growth potential.",
                    level='medium',
                ))

        return GeoSummary(
            geo_tagged=geo_tagged,
            zone_count=len(zones),
            by_city=cities,
            by_region=regions,
            hotspots=tuple(hotspots),
        )
