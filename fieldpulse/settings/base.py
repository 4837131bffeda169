"""
Django settings for the fieldpulse analytics project.

The project only hosts the analytics/reporting engine (``core``); responses
and field definitions are handed in by the surrounding application, so no
database, URL routing or middleware is configured here.
"""

from pathlib import Path
from decouple import config
import os

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = config('SECRET_KEY', default='fieldpulse-insecure-dev-key')

DEBUG = config('DEBUG', default=False, cast=bool)

COMPANY_NAME = config('COMPANY_NAME', default='FieldPulse')


# Application definition

INSTALLED_APPS = [
    # --- Mis Apps ---
    'core.apps.CoreConfig',
]

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [],
        },
    },
]


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = config('TIME_ZONE', default='UTC')
USE_I18N = True
USE_TZ = True


# ============================================================
# CACHE (usado opcionalmente por DjangoGeocodeCache)
# ============================================================
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'fieldpulse-default',
    },
    'geocoding': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'fieldpulse-geocoding',
        'TIMEOUT': None,
        'OPTIONS': {'MAX_ENTRIES': config('GEOCODE_CACHE_MAX_ENTRIES', default=1000, cast=int)},
    },
}


# ============================================================
# ANALYTICS ENGINE
# Los umbrales de InsightThresholds / RecommendationThresholds se pueden
# sobreescribir con dicts parciales bajo las claves *_THRESHOLDS.
# ============================================================
FIELD_ANALYTICS = {
    'INSIGHT_THRESHOLDS': {},
    'RECOMMENDATION_THRESHOLDS': {},
    'GEOCODING_DELAY_SECONDS': config('GEOCODING_DELAY_SECONDS', default=1.1, cast=float),
    'GEOCODING_TIMEOUT_SECONDS': config('GEOCODING_TIMEOUT_SECONDS', default=10.0, cast=float),
    'GEOCODING_BATCH_LIMIT': config('GEOCODING_BATCH_LIMIT', default=20, cast=int),
    'GEOCODING_LANGUAGE': config('GEOCODING_LANGUAGE', default='fr'),
    'GEOCODING_USER_AGENT': config('GEOCODING_USER_AGENT', default='FieldPulse-Analytics/1.0 (geocoding)'),
    'NOMINATIM_URL': config('NOMINATIM_URL', default='https://nominatim.openstreetmap.org/reverse'),
    'GEOCODE_CACHE_MAX_ENTRIES': config('GEOCODE_CACHE_MAX_ENTRIES', default=1000, cast=int),
    'TIMELINE_DAYS': 14,
    'GEO_ZONE_PRECISION': 2,
    'GEO_ZONE_TOP_N': 20,
}


# ============================================================
# LOGGING CONFIGURATION
# ============================================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': { 'format': '[{levelname}] {asctime} {name} {module}.{funcName}:{lineno} - {message}', 'style': '{', 'datefmt': '%Y-%m-%d %H:%M:%S', },
        'simple': { 'format': '[{levelname}] {asctime} - {message}', 'style': '{', 'datefmt': '%Y-%m-%d %H:%M:%S', },
        'detailed': { 'format': '{asctime} | {name:30} | {levelname:8} | {funcName:20} | {message}', 'style': '{', 'datefmt': '%Y-%m-%d %H:%M:%S', },
    },
    'handlers': {
        'console': { 'level': 'DEBUG' if DEBUG else 'INFO', 'class': 'logging.StreamHandler', 'formatter': 'detailed', },
        'file_app': { 'level': 'INFO', 'class': 'logging.handlers.RotatingFileHandler', 'filename': BASE_DIR / 'logs' / 'app.log', 'maxBytes': 1024 * 1024 * 10, 'backupCount': 5, 'formatter': 'detailed', },
        'file_error': { 'level': 'ERROR', 'class': 'logging.handlers.RotatingFileHandler', 'filename': BASE_DIR / 'logs' / 'error.log', 'maxBytes': 1024 * 1024 * 10, 'backupCount': 5, 'formatter': 'verbose', },
        'file_geocoding': { 'level': 'INFO', 'class': 'logging.handlers.RotatingFileHandler', 'filename': BASE_DIR / 'logs' / 'geocoding.log', 'maxBytes': 1024 * 1024 * 5, 'backupCount': 5, 'formatter': 'detailed', },
    },
    'loggers': {
        'django': { 'handlers': ['console', 'file_app'], 'level': 'INFO', 'propagate': False, },
        'core': { 'handlers': ['console', 'file_app', 'file_error'], 'level': 'DEBUG' if DEBUG else 'INFO', 'propagate': False, },
        'core.services.geocoding': { 'handlers': ['console', 'file_geocoding', 'file_error'], 'level': 'INFO', 'propagate': False, },
        'core.performance': { 'handlers': ['console', 'file_app'], 'level': 'INFO', 'propagate': False, },
    },
    'root': { 'handlers': ['console', 'file_app'], 'level': 'INFO', },
}

# Ensure logs dir exists
logs_dir = BASE_DIR / 'logs'
if not os.path.exists(logs_dir):
    os.makedirs(logs_dir)
