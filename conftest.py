# conftest.py
"""
Pytest configuration for FieldPulse.
Forces the use of test settings regardless of environment variables.
"""
import os
from datetime import datetime, timedelta, timezone as dt_timezone

import django
import pytest
from django.conf import settings

# Force test settings module before Django setup
os.environ['DJANGO_SETTINGS_MODULE'] = 'fieldpulse.settings.test'
os.environ['DJANGO_ENV'] = 'test'


# Configure Django settings
def pytest_configure():
    """Configure Django settings for pytest."""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'fieldpulse.settings.test')
    os.environ['DJANGO_ENV'] = 'test'

    # Ensure Django is properly configured
    if not settings.configured:
        django.setup()


# ============================================================
# FIXTURES COMPARTIDAS
# ============================================================

@pytest.fixture
def generated_at():
    """Fixed report timestamp so exports are reproducible."""
    return datetime(2024, 3, 15, 12, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def make_response():
    """Factory: ``make_response(answers, day=0, lat=None, lng=None)``."""
    from core.models_analytics import GeoPoint, ResponseRecord

    base = datetime(2024, 3, 1, 9, 0, tzinfo=dt_timezone.utc)
    counter = {'n': 0}

    def _make(answers=None, day=0, hour=0, lat=None, lng=None, response_id=None):
        counter['n'] += 1
        location = GeoPoint(lat=lat, lng=lng) if lat is not None and lng is not None else None
        return ResponseRecord(
            id=response_id or f"r{counter['n']}",
            created_at=base + timedelta(days=day, hours=hour),
            answers=dict(answers or {}),
            location=location,
        )

    return _make


@pytest.fixture
def survey_fields():
    from core.models_analytics import FieldDefinition, FieldOption

    return (
        FieldDefinition(
            id='color', label='Favorite color', type='select', required=True,
            options=(FieldOption('red', 'Red'), FieldOption('blue', 'Blue'), FieldOption('green', 'Green')),
        ),
        FieldDefinition(id='score', label='Satisfaction', type='rating', required=True, max_value=5),
        FieldDefinition(id='age', label='Age', type='number'),
        FieldDefinition(id='notes', label='Notes', type='text'),
    )
