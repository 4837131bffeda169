"""
Tests para core/services/geocoding.py
El proveedor y el reloj son falsos: ningún test duerme ni sale a la red.
"""
import asyncio
import logging

import httpx
import pytest
from django.core.cache import caches

from core.models_analytics import GeocodeResult
from core.services.geocoding import (
    CancellationToken,
    DjangoGeocodeCache,
    GeocodeCache,
    LookupPoint,
    NominatimProvider,
    RateLimitedGeocoder,
    SequentialScheduler,
    make_cache_key,
)


# ============================================================================
# FAKES
# ============================================================================


class FakeClock:
    """Reloj manual; ``sleep`` avanza el tiempo en lugar de esperar."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProvider:
    def __init__(self, clock=None, failing=(), call_duration=0.2, on_call=None):
        self.clock = clock
        self.failing = set(failing)
        self.call_duration = call_duration
        self.on_call = on_call
        self.calls = []
        self.started = []
        self.finished = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def reverse_geocode(self, lat, lng, language):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.clock is not None:
                self.started.append(self.clock())
                self.clock.now += self.call_duration
                self.finished.append(self.clock())
            self.calls.append((lat, lng, language))
            if self.on_call is not None:
                self.on_call(len(self.calls))
            if (lat, lng) in self.failing:
                raise RuntimeError("provider unavailable")
            return GeocodeResult(city=f"City {lat:g}", region='Maritime', country='Togo')
        finally:
            self.in_flight -= 1


def make_geocoder(provider, clock, **kwargs):
    scheduler = SequentialScheduler(delay_seconds=1.1, sleep=clock.sleep, clock=clock)
    kwargs.setdefault('cache', GeocodeCache(max_entries=100))
    kwargs.setdefault('timeout_seconds', 5)
    kwargs.setdefault('batch_limit', 20)
    kwargs.setdefault('language', 'fr')
    return RateLimitedGeocoder(provider, scheduler=scheduler, **kwargs)


def points(*coords):
    return [{'id': f"p{i}", 'lat': lat, 'lng': lng} for i, (lat, lng) in enumerate(coords, start=1)]


# ============================================================================
# CACHE
# ============================================================================


class TestGeocodeCache:

    def test_cache_key_rounds_to_four_decimals(self):
        assert make_cache_key(6.13725, 1.2) == '6.1373,1.2000'
        assert make_cache_key(6.13724, 1.2) == '6.1372,1.2000'

    def test_get_set(self):
        cache = GeocodeCache(max_entries=10)
        result = GeocodeResult(city='Lomé')
        cache.set('k', result)
        assert cache.get('k') is result
        assert cache.get('missing') is None
        assert 'k' in cache

    def test_oldest_entry_evicted(self):
        cache = GeocodeCache(max_entries=2)
        for key in ('a', 'b', 'c'):
            cache.set(key, GeocodeResult(city=key))
        assert len(cache) == 2
        assert 'a' not in cache
        assert cache.get('c').city == 'c'

    def test_default_size_from_settings(self, settings):
        settings.FIELD_ANALYTICS = {**settings.FIELD_ANALYTICS, 'GEOCODE_CACHE_MAX_ENTRIES': 3}
        assert GeocodeCache().max_entries == 3


class TestDjangoGeocodeCache:

    @pytest.fixture(autouse=True)
    def clear_cache(self):
        caches['geocoding'].clear()
        yield
        caches['geocoding'].clear()

    def test_roundtrip(self):
        cache = DjangoGeocodeCache()
        cache.set('6.1300,1.2200', GeocodeResult(city='Lomé', region='Maritime', country='Togo'))
        assert cache.get('6.1300,1.2200') == GeocodeResult(city='Lomé', region='Maritime', country='Togo')
        assert cache.get('0.0000,0.0000') is None

    def test_usable_by_geocoder(self):
        clock = FakeClock()
        provider = FakeProvider(clock)
        geocoder = make_geocoder(provider, clock, cache=DjangoGeocodeCache())

        asyncio.run(geocoder.resolve_batch(points((6.13, 1.22))))
        # una segunda instancia comparte la caché de Django
        other = make_geocoder(provider, clock, cache=DjangoGeocodeCache())
        result = asyncio.run(other.resolve_batch(points((6.13, 1.22))))

        assert result['p1'].city == 'City 6.13'
        assert len(provider.calls) == 1
        assert other.cache_hits == 1


# ============================================================================
# SCHEDULER
# ============================================================================


class TestSequentialScheduler:

    def test_first_call_does_not_wait(self):
        clock = FakeClock()
        scheduler = SequentialScheduler(delay_seconds=1.1, sleep=clock.sleep, clock=clock)

        async def work():
            return 'ok'

        assert asyncio.run(scheduler.run(work)) == 'ok'
        assert clock.sleeps == []
        assert scheduler.calls == 1

    def test_waits_remaining_delay(self):
        clock = FakeClock()
        scheduler = SequentialScheduler(delay_seconds=1.1, sleep=clock.sleep, clock=clock)

        async def work():
            return None

        async def scenario():
            await scheduler.run(work)
            clock.now += 0.5
            await scheduler.run(work)
            clock.now += 5
            await scheduler.run(work)

        asyncio.run(scenario())
        assert clock.sleeps == [pytest.approx(0.6)]
        assert scheduler.calls == 3

    def test_concurrent_callers_are_serialized(self):
        clock = FakeClock()
        provider = FakeProvider(clock)
        scheduler = SequentialScheduler(delay_seconds=1.1, sleep=clock.sleep, clock=clock)

        async def scenario():
            await asyncio.gather(*[
                scheduler.run(provider.reverse_geocode, float(i), 0.0, 'fr') for i in range(4)
            ])

        asyncio.run(scenario())
        assert provider.max_in_flight == 1
        assert scheduler.calls == 4


# ============================================================================
# GEOCODER
# ============================================================================


class TestRateLimitedGeocoder:

    def test_failure_is_skipped(self):
        """Un fallo en el punto 2 no aborta el lote"""
        clock = FakeClock()
        provider = FakeProvider(clock, failing={(2.0, 2.0)})
        geocoder = make_geocoder(provider, clock)

        result = asyncio.run(geocoder.resolve_batch(points((1.0, 1.0), (2.0, 2.0), (3.0, 3.0))))

        assert set(result) == {'p1', 'p3'}
        assert geocoder.failures == 1
        assert len(provider.calls) == 3

    def test_failure_logged_with_traceback(self, caplog):
        caplog.set_level(logging.WARNING, logger='core.services.geocoding')
        clock = FakeClock()
        provider = FakeProvider(clock, failing={(2.0, 2.0)})
        geocoder = make_geocoder(provider, clock)

        asyncio.run(geocoder.resolve_batch(points((2.0, 2.0))))

        failed = [r for r in caplog.records if r.getMessage().startswith("Geocoding failed")]
        assert len(failed) == 1
        assert "key=2.0000,2.0000" in failed[0].getMessage()
        assert failed[0].exc_info[0] is RuntimeError

    def test_failures_are_not_cached(self):
        clock = FakeClock()
        provider = FakeProvider(clock, failing={(2.0, 2.0)})
        geocoder = make_geocoder(provider, clock)

        asyncio.run(geocoder.resolve_batch(points((2.0, 2.0))))
        provider.failing.clear()
        result = asyncio.run(geocoder.resolve_batch(points((2.0, 2.0))))

        assert result['p1'].city == 'City 2'
        assert len(provider.calls) == 2

    def test_overlapping_batches_hit_cache(self):
        clock = FakeClock()
        provider = FakeProvider(clock)
        geocoder = make_geocoder(provider, clock)

        asyncio.run(geocoder.resolve_batch(points((1.0, 1.0), (2.0, 2.0))))
        sleeps_before = len(clock.sleeps)
        second = asyncio.run(geocoder.resolve_batch(points((2.0, 2.0), (1.0, 1.0))))

        assert len(second) == 2
        assert len(provider.calls) == 2
        assert geocoder.cache_hits == 2
        # los aciertos de caché no esperan el retardo
        assert len(clock.sleeps) == sleeps_before

    def test_delay_between_external_calls(self):
        clock = FakeClock()
        provider = FakeProvider(clock, call_duration=0.3)
        geocoder = make_geocoder(provider, clock)

        coords = [(float(i), float(i)) for i in range(1, 6)]
        asyncio.run(geocoder.resolve_batch(points(*coords)))

        gaps = [start - end for start, end in zip(provider.started[1:], provider.finished[:-1])]
        assert all(gap >= 1.1 - 1e-9 for gap in gaps)
        assert geocoder.external_calls == 5
        assert (geocoder.external_calls - 1) * 1.1 <= clock.now

    def test_timeout_is_logged_and_skipped(self):
        class SlowProvider:
            async def reverse_geocode(self, lat, lng, language):
                await asyncio.sleep(10)

        geocoder = RateLimitedGeocoder(
            SlowProvider(),
            cache=GeocodeCache(max_entries=10),
            scheduler=SequentialScheduler(delay_seconds=0),
            timeout_seconds=0.01,
        )
        result = asyncio.run(geocoder.resolve_batch(points((1.0, 1.0))))

        assert result == {}
        assert geocoder.failures == 1
        assert len(geocoder.cache) == 0

    def test_cancellation_returns_partial_results(self):
        clock = FakeClock()
        token = CancellationToken()
        provider = FakeProvider(clock, on_call=lambda n: token.cancel() if n == 2 else None)
        geocoder = make_geocoder(provider, clock)

        result = asyncio.run(
            geocoder.resolve_batch(points((1.0, 1.0), (2.0, 2.0), (3.0, 3.0)), cancel_token=token)
        )

        assert set(result) == {'p1', 'p2'}
        assert len(provider.calls) == 2

    def test_batch_limit_and_invalid_points(self):
        clock = FakeClock()
        provider = FakeProvider(clock)
        geocoder = make_geocoder(provider, clock, batch_limit=2)

        raw = [
            {'id': 'bad', 'lat': 95.0, 'lng': 0.0},
            {'id': 'nan', 'lat': float('nan'), 'lng': 0.0},
            {'id': 'a', 'lat': 1.0, 'lng': 1.0},
            {'id': 'b', 'lat': 2.0, 'lng': 2.0},
            {'id': 'c', 'lat': 3.0, 'lng': 3.0},
        ]
        result = asyncio.run(geocoder.resolve_batch(raw))
        assert set(result) == {'a', 'b'}

    def test_language_passed_to_provider(self):
        clock = FakeClock()
        provider = FakeProvider(clock)
        geocoder = make_geocoder(provider, clock, language='en')
        asyncio.run(geocoder.resolve_one(1.0, 1.0))
        assert provider.calls == [(1.0, 1.0, 'en')]

    def test_address_for_fallback(self):
        clock = FakeClock()
        provider = FakeProvider(clock, failing={(6.5, 1.25)})
        geocoder = make_geocoder(provider, clock)

        assert asyncio.run(geocoder.address_for(6.5, 1.25)) == '6.5000°, 1.2500°'
        assert asyncio.run(geocoder.address_for(1.0, 1.0)) == 'City 1, Maritime, Togo'


class TestLookupPoint:

    def test_from_dict_and_object(self):
        assert LookupPoint.from_raw({'id': 1, 'latitude': '6.1', 'longitude': 1.2}) == LookupPoint('1', 6.1, 1.2)
        assert LookupPoint.from_raw(LookupPoint('x', 1.0, 2.0)) == LookupPoint('x', 1.0, 2.0)

    def test_rejects_missing_id_or_bad_coordinates(self):
        assert LookupPoint.from_raw({'lat': 1, 'lng': 1}) is None
        assert LookupPoint.from_raw({'id': 'p', 'lat': 1, 'lng': 200}) is None
        assert LookupPoint.from_raw({'id': 'p', 'lat': 'x', 'lng': 1}) is None


# ============================================================================
# NOMINATIM
# ============================================================================


class TestNominatimProvider:

    def test_parse_prefers_city_then_town(self):
        payload = {'address': {'town': 'Kpalimé', 'state': 'Plateaux', 'country': 'Togo'}}
        assert NominatimProvider.parse(payload) == GeocodeResult(city='Kpalimé', region='Plateaux', country='Togo')

    def test_parse_empty_payload(self):
        assert NominatimProvider.parse({}) == GeocodeResult()

    def test_reverse_geocode_request(self):
        seen = {}

        def handler(request):
            seen['params'] = dict(request.url.params)
            seen['user_agent'] = request.headers['User-Agent']
            return httpx.Response(200, json={'address': {'city': 'Lomé', 'country': 'Togo'}})

        async def scenario():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                provider = NominatimProvider(url='https://geo.test/reverse', user_agent='tests/1.0', client=client)
                return await provider.reverse_geocode(6.137249, 1.21231, 'fr')

        result = asyncio.run(scenario())

        assert result.city == 'Lomé'
        assert seen['params'] == {
            'format': 'json', 'lat': '6.1372', 'lon': '1.2123', 'accept-language': 'fr',
        }
        assert seen['user_agent'] == 'tests/1.0'

    def test_http_error_raises(self):
        def handler(request):
            return httpx.Response(503)

        async def scenario():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                provider = NominatimProvider(url='https://geo.test/reverse', client=client)
                return await provider.reverse_geocode(1.0, 1.0, 'fr')

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(scenario())
