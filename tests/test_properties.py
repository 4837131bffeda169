"""
Propiedades que deben cumplirse para cualquier conjunto de respuestas.
Los datos se generan con semillas fijas para que los fallos sean reproducibles.
"""
import asyncio
import random

import pytest

from core.models_analytics import FieldDefinition, GeocodeResult
from core.services.field_aggregator import FieldAggregator
from core.services.geocoding import GeocodeCache, RateLimitedGeocoder, SequentialScheduler

SEEDS = [1, 7, 42, 2024]
OPTIONS = ['a', 'b', 'c', 'd', 'e']


class ManualClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.now += seconds


class TimedProvider:
    """Cada llamada tarda ``duration`` segundos en el reloj manual."""

    def __init__(self, clock, duration=0.3):
        self.clock = clock
        self.duration = duration
        self.starts = []
        self.calls = []

    async def reverse_geocode(self, lat, lng, language):
        self.starts.append(self.clock())
        self.calls.append((lat, lng))
        self.clock.now += self.duration
        return GeocodeResult(city=f"{lat:.2f}")


def make_geocoder(provider, clock, delay=1.1):
    return RateLimitedGeocoder(
        provider,
        cache=GeocodeCache(max_entries=500),
        scheduler=SequentialScheduler(delay_seconds=delay, sleep=clock.sleep, clock=clock),
        timeout_seconds=5,
        batch_limit=50,
    )


def random_points(rng, n, prefix='p'):
    return [
        {'id': f"{prefix}{i}", 'lat': round(rng.uniform(-60, 60), 4), 'lng': round(rng.uniform(-170, 170), 4)}
        for i in range(n)
    ]


@pytest.mark.parametrize("seed", SEEDS)
def test_category_counts_match_contributions(make_response, seed):
    rng = random.Random(seed)
    field = FieldDefinition(id='q', label='Q', type='multiselect')
    answers = []
    for _ in range(rng.randint(1, 40)):
        if rng.random() < 0.2:
            answers.append(None)
        elif rng.random() < 0.5:
            answers.append(rng.sample(OPTIONS, rng.randint(0, 3)))
        else:
            answers.append(rng.choice(OPTIONS))
    responses = [make_response({'q': answer}) for answer in answers]

    contributed = sum(
        len(a) if isinstance(a, list) else 1
        for a in answers if a is not None
    )
    analysis = FieldAggregator.aggregate(field, responses)

    assert sum(c.count for c in analysis.categories) == contributed
    assert analysis.total_mentions == contributed


@pytest.mark.parametrize("seed", SEEDS)
def test_numeric_stats_are_ordered(make_response, seed):
    rng = random.Random(seed)
    field = FieldDefinition(id='n', label='N', type='number')
    values = [rng.choice([rng.randint(-50, 50), rng.uniform(0, 1000), 'n/a', '']) for _ in range(rng.randint(1, 30))]

    stats = FieldAggregator.aggregate(field, [make_response({'n': v}) for v in values]).stats

    assert stats.min <= stats.median <= stats.max
    assert stats.std_dev >= 0


@pytest.mark.parametrize("n_points", [1, 3, 8])
def test_rate_limit_spacing(n_points):
    clock = ManualClock()
    provider = TimedProvider(clock)
    geocoder = make_geocoder(provider, clock)

    asyncio.run(geocoder.resolve_batch(random_points(random.Random(n_points), n_points)))

    assert geocoder.external_calls == n_points
    gaps = [b - a for a, b in zip(provider.starts, provider.starts[1:])]
    assert all(gap >= 1.1 - 1e-9 for gap in gaps)
    assert (n_points - 1) * 1.1 <= clock.now + 1e-9


@pytest.mark.parametrize("seed", SEEDS)
def test_overlapping_batches_hit_cache(seed):
    rng = random.Random(seed)
    clock = ManualClock()
    provider = TimedProvider(clock)
    geocoder = make_geocoder(provider, clock)
    first = random_points(rng, 6, prefix='a')
    second = first[2:] + random_points(rng, 3, prefix='b')

    asyncio.run(geocoder.resolve_batch(first))
    asyncio.run(geocoder.resolve_batch(second))

    assert len(provider.calls) == 9
    assert geocoder.cache_hits == 4
