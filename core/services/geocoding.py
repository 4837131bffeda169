"""
Geocodificación inversa con límite de tasa y caché.

El proveedor público (Nominatim) admite ~1 petición por segundo, así que
todas las llamadas externas pasan por un único ``SequentialScheduler``:
nunca hay dos peticiones en vuelo y entre una y otra transcurre al menos el
retardo configurado. La caché se consulta antes de cada llamada y solo se
escribe con resultados exitosos; los fallos y timeouts se registran y se
saltan para poder reintentarlos más adelante.
"""
import asyncio
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Dict, Iterable, Optional, Protocol

import httpx
from django.core.cache import caches

from core.conf import get_analytics_settings
from core.models_analytics import GeocodeResult, coordinates_label
from core.utils.helpers import is_valid_coordinate, round_half_up, to_number
from core.utils.logging_utils import StructuredLogger

logger = StructuredLogger(__name__)


def make_cache_key(lat: float, lng: float) -> str:
    """Coordinates at 4 decimals (~11 m), shared by every cache backend."""
    return f"{round_half_up(lat, 4):.4f},{round_half_up(lng, 4):.4f}"


# ============================================================================
# CACHE
# ============================================================================

class GeocodeCache:
    """
    Memo en memoria de coordenadas -> GeocodeResult.

    Sin TTL: una entrada vive lo que vive el objeto. Cuando se supera
    ``max_entries`` se descarta la entrada más antigua.
    """

    def __init__(self, max_entries: Optional[int] = None):
        if max_entries is None:
            max_entries = get_analytics_settings().geocode_cache_max_entries
        self.max_entries = max_entries
        self._data = OrderedDict()

    def get(self, key: str) -> Optional[GeocodeResult]:
        return self._data.get(key)

    def set(self, key: str, value: GeocodeResult) -> None:
        self._data[key] = value
        while self.max_entries and len(self._data) > self.max_entries:
            self._data.popitem(last=False)

    def clear(self):
        self._data.clear()

    def __len__(self):
        return len(self._data)

    def __contains__(self, key):
        return key in self._data


class DjangoGeocodeCache:
    """
    Same interface on top of a Django cache alias, so several workers of the
    surrounding application can share resolved places.
    """

    KEY_PREFIX = 'geocode'

    def __init__(self, alias: str = 'geocoding'):
        self.alias = alias

    @property
    def backend(self):
        return caches[self.alias]

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}:{key}"

    def get(self, key: str) -> Optional[GeocodeResult]:
        raw = self.backend.get(self._key(key))
        if raw is None:
            return None
        return GeocodeResult(**raw)

    def set(self, key: str, value: GeocodeResult) -> None:
        # timeout=None: sin expiración, igual que la caché en memoria
        self.backend.set(self._key(key), asdict(value), timeout=None)


# ============================================================================
# SCHEDULING
# ============================================================================

class CancellationToken:
    """Flag checked between lookups; cancelling keeps partial results."""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class SequentialScheduler:
    """
    Worker único para llamadas externas.

    Un ``asyncio.Lock`` garantiza una sola llamada en vuelo; antes de cada
    llamada (salvo la primera) se espera hasta que hayan pasado
    ``delay_seconds`` desde que terminó la anterior. ``sleep`` y ``clock``
    son inyectables para que los tests no duerman de verdad.
    """

    def __init__(
        self,
        delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if delay_seconds is None:
            delay_seconds = get_analytics_settings().geocoding_delay_seconds
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_finished = None
        self.calls = 0

    async def run(self, func: Callable[..., Awaitable], *args):
        async with self._lock:
            if self._last_finished is not None:
                remaining = self.delay_seconds - (self._clock() - self._last_finished)
                if remaining > 0:
                    await self._sleep(remaining)
            self.calls += 1
            try:
                return await func(*args)
            finally:
                self._last_finished = self._clock()


# ============================================================================
# PROVIDERS
# ============================================================================

class GeocodingProvider(Protocol):
    async def reverse_geocode(self, lat: float, lng: float, language: str) -> GeocodeResult:
        ...


class NominatimProvider:
    """Reverse geocoding against OpenStreetMap Nominatim over httpx."""

    CITY_KEYS = ('city', 'town', 'village', 'municipality', 'locality')
    REGION_KEYS = ('state', 'region', 'county')

    def __init__(
        self,
        url: Optional[str] = None,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        conf = get_analytics_settings()
        self.url = url or conf.nominatim_url
        self.user_agent = user_agent or conf.geocoding_user_agent
        self._client = client

    @classmethod
    def parse(cls, payload) -> GeocodeResult:
        address = (payload or {}).get('address') or {}

        def first(keys):
            for key in keys:
                if address.get(key):
                    return address[key]
            return None

        return GeocodeResult(
            city=first(cls.CITY_KEYS),
            region=first(cls.REGION_KEYS),
            country=address.get('country') or None,
        )

    async def reverse_geocode(self, lat: float, lng: float, language: str) -> GeocodeResult:
        params = {
            'format': 'json',
            'lat': f"{round_half_up(lat, 4):.4f}",
            'lon': f"{round_half_up(lng, 4):.4f}",
            'accept-language': language,
        }
        headers = {'User-Agent': self.user_agent}

        if self._client is not None:
            response = await self._client.get(self.url, params=params, headers=headers)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(self.url, params=params, headers=headers)
        response.raise_for_status()
        return self.parse(response.json())


# ============================================================================
# GEOCODER
# ============================================================================

@dataclass(frozen=True)
class LookupPoint:
    id: str
    lat: float
    lng: float

    @classmethod
    def from_raw(cls, raw) -> Optional['LookupPoint']:
        if isinstance(raw, LookupPoint):
            return raw
        if isinstance(raw, dict):
            point_id = raw.get('id')
            lat = raw.get('lat', raw.get('latitude'))
            lng = raw.get('lng', raw.get('longitude'))
        else:
            point_id = getattr(raw, 'id', None)
            lat = getattr(raw, 'lat', None)
            lng = getattr(raw, 'lng', None)
        if point_id is None or not is_valid_coordinate(lat, lng):
            return None
        return cls(id=str(point_id), lat=to_number(lat), lng=to_number(lng))


class RateLimitedGeocoder:
    """
    Resolutor secuencial por lotes sobre una caché inyectada.

    Garantías:
    - como máximo una llamada externa en vuelo (``SequentialScheduler``);
    - un acierto de caché no llama al proveedor ni espera el retardo;
    - un fallo o timeout se registra, no se cachea y no aborta el lote.
    """

    def __init__(
        self,
        provider: GeocodingProvider,
        cache=None,
        scheduler: Optional[SequentialScheduler] = None,
        timeout_seconds: Optional[float] = None,
        batch_limit: Optional[int] = None,
        language: Optional[str] = None,
    ):
        conf = get_analytics_settings()
        self.provider = provider
        self.cache = cache if cache is not None else GeocodeCache(conf.geocode_cache_max_entries)
        self.scheduler = scheduler or SequentialScheduler(conf.geocoding_delay_seconds)
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else conf.geocoding_timeout_seconds
        self.batch_limit = batch_limit if batch_limit is not None else conf.geocoding_batch_limit
        self.language = language or conf.geocoding_language
        self.cache_hits = 0
        self.failures = 0

    @property
    def external_calls(self) -> int:
        return self.scheduler.calls

    async def _lookup(self, lat: float, lng: float) -> GeocodeResult:
        return await asyncio.wait_for(
            self.provider.reverse_geocode(lat, lng, self.language),
            timeout=self.timeout_seconds,
        )

    async def resolve_one(self, lat: float, lng: float) -> Optional[GeocodeResult]:
        """Cached lookup of a single coordinate; None when it could not be resolved."""
        if not is_valid_coordinate(lat, lng):
            return None
        key = make_cache_key(lat, lng)
        cached = self.cache.get(key)
        if cached is not None:
            self.cache_hits += 1
            logger.debug("Geocode cache hit", key=key)
            return cached

        try:
            result = await self.scheduler.run(self._lookup, lat, lng)
        except asyncio.TimeoutError:
            self.failures += 1
            logger.warning("Geocoding timed out", key=key, timeout=self.timeout_seconds)
            return None
        except Exception:
            self.failures += 1
            logger.exception("Geocoding failed", key=key)
            return None

        if result is None:
            self.failures += 1
            logger.warning("Geocoding returned no result", key=key)
            return None

        self.cache.set(key, result)
        return result

    async def resolve_batch(
        self,
        points: Iterable,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, GeocodeResult]:
        """
        Resuelve ``points`` ({id, lat, lng}) en orden, uno a la vez.

        Solo se consideran los primeros ``batch_limit`` puntos válidos; el
        resultado puede ser más pequeño que la entrada. Si el token se
        cancela, se devuelve lo resuelto hasta ese momento.
        """
        lookups = [p for p in (LookupPoint.from_raw(raw) for raw in points) if p is not None]
        if self.batch_limit:
            lookups = lookups[: self.batch_limit]

        results = {}
        for index, point in enumerate(lookups):
            if cancel_token is not None and cancel_token.cancelled:
                logger.info(
                    "Geocoding batch cancelled",
                    resolved=len(results),
                    pending=len(lookups) - index,
                )
                break
            result = await self.resolve_one(point.lat, point.lng)
            if result is not None:
                results[point.id] = result

        logger.debug(
            "Geocoding batch finished",
            requested=len(lookups),
            resolved=len(results),
            cache_hits=self.cache_hits,
            failures=self.failures,
        )
        return results

    async def address_for(self, lat: float, lng: float) -> str:
        """Readable place name, or the ``lat°, lng°`` fallback."""
        result = await self.resolve_one(lat, lng)
        if result is not None and result.full_address:
            return result.full_address
        return coordinates_label(lat, lng)
