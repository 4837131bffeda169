from .base import *
from decouple import config

# ============================================================
# CONFIGURACIÓN LOCAL
# ============================================================

DEBUG = True

# Geocoding más paciente en desarrollo (Nominatim público comparte cuota)
FIELD_ANALYTICS = {
    **FIELD_ANALYTICS,
    'GEOCODING_TIMEOUT_SECONDS': config('GEOCODING_TIMEOUT_SECONDS', default=15.0, cast=float),
}

LOGGING['loggers']['core']['level'] = 'DEBUG'
