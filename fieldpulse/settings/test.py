"""
Test settings for FieldPulse.
"""
# Heredamos de 'base' para no depender de variables de entorno locales.
from .base import *

# ============================================================
# CONFIGURACIÓN BÁSICA PARA TESTS
# ============================================================
DEBUG = False
SECRET_KEY = 'test-secret-key-insecure-but-fast'
TIME_ZONE = 'UTC'

# ============================================================
# CACHE (Memoria RAM para velocidad extrema)
# ============================================================
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'unique-snowflake',
    },
    'geocoding': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'geocoding-snowflake',
        'TIMEOUT': None,
    },
}

# ============================================================
# GEOCODING (sin esperas reales; los tests inyectan su propio reloj)
# ============================================================
FIELD_ANALYTICS = {
    **FIELD_ANALYTICS,
    'GEOCODING_DELAY_SECONDS': 1.1,
    'GEOCODING_TIMEOUT_SECONDS': 2.0,
    'GEOCODING_BATCH_LIMIT': 20,
    'GEOCODING_LANGUAGE': 'fr',
}

# ============================================================
# LOGGING (Silencioso para no ensuciar la consola)
# ============================================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'null': {
            'class': 'logging.NullHandler',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['null'],
            'level': 'CRITICAL',
        },
        'core': {
            'handlers': ['null'],
            'level': 'CRITICAL',
        },
    },
}
