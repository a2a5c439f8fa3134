"""
Django settings for LASTMILE project.
Point-to-point delivery coordination platform

Configuration for:
- PostGIS or SpatiaLite (GeoDjango proximity queries)
- Redis/Celery (location retention purge)
- JWT Authentication (API)
"""

from pathlib import Path
from decouple import config, Csv
from datetime import timedelta

# ===========================================
# BASE CONFIGURATION
# ===========================================
BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = config('SECRET_KEY', default='dev-secret-key-change-in-production')
DEBUG = config('DEBUG', default=True, cast=bool)
ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1,0.0.0.0', cast=Csv())

# ===========================================
# APPLICATION DEFINITION
# ===========================================
INSTALLED_APPS = [
    # Django Core
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'django.contrib.gis',

    # Third Party
    'rest_framework',
    'rest_framework_simplejwt',

    # LASTMILE Apps
    'core.apps.CoreConfig',
    'logistics.apps.LogisticsConfig',
    'finance.apps.FinanceConfig',
]


MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'lastmile_core.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'lastmile_core.wsgi.application'

# ===========================================
# DATABASE (GeoDjango)
# ===========================================
# SpatiaLite by default, PostGIS with DB_ENGINE=django.contrib.gis.db.backends.postgis
DB_ENGINE = config('DB_ENGINE', default='django.contrib.gis.db.backends.spatialite')

if DB_ENGINE == 'django.contrib.gis.db.backends.spatialite':
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': config('DB_NAME', default=str(BASE_DIR / 'db.sqlite3')),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': config('DB_NAME', default='lastmile_db'),
            'USER': config('DB_USER', default='lastmile_user'),
            'PASSWORD': config('DB_PASSWORD', default=''),
            'HOST': config('DB_HOST', default='db'),
            'PORT': config('DB_PORT', default='5432'),
        }
    }

# Native GIS libraries, only needed outside the default search path
GDAL_LIBRARY_PATH = config('GDAL_LIBRARY_PATH', default=None)
GEOS_LIBRARY_PATH = config('GEOS_LIBRARY_PATH', default=None)
SPATIALITE_LIBRARY_PATH = config('SPATIALITE_LIBRARY_PATH', default=None)

# ===========================================
# CUSTOM USER MODEL
# ===========================================
AUTH_USER_MODEL = 'core.User'

# ===========================================
# PASSWORD VALIDATION
# ===========================================
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

# ===========================================
# INTERNATIONALIZATION
# ===========================================
LANGUAGE_CODE = 'en-us'
TIME_ZONE = config('TIME_ZONE', default='UTC')
USE_I18N = True
USE_TZ = True

# ===========================================
# STATIC FILES
# ===========================================
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# ===========================================
# DEFAULT PRIMARY KEY
# ===========================================
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ===========================================
# DJANGO REST FRAMEWORK
# ===========================================
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework_simplejwt.authentication.JWTAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 20,
    'EXCEPTION_HANDLER': 'core.exceptions.api_exception_handler',
}

# ===========================================
# JWT CONFIGURATION
# ===========================================
SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(hours=12),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=7),
    'ROTATE_REFRESH_TOKENS': True,
    'BLACKLIST_AFTER_ROTATION': False,
    'AUTH_HEADER_TYPES': ('Bearer',),
}

# ===========================================
# REDIS & CELERY CONFIGURATION
# ===========================================
REDIS_URL = config('REDIS_URL', default='')

# Cache (geocoding results)
if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.redis.RedisCache',
            'LOCATION': REDIS_URL,
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'lastmile-default',
        }
    }

# Celery
CELERY_BROKER_URL = config('CELERY_BROKER_URL', default='redis://redis:6379/0')
CELERY_RESULT_BACKEND = config('CELERY_RESULT_BACKEND', default='redis://redis:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE

# Celery Beat Schedule (Periodic Tasks)
from celery.schedules import crontab

CELERY_BEAT_SCHEDULE = {
    # Drop courier telemetry older than the retention window
    'purge-expired-locations': {
        'task': 'logistics.tasks.purge_expired_locations',
        'schedule': crontab(minute=0),  # Every hour at :00
    },
}

# ===========================================
# EXTERNAL SERVICES
# ===========================================

# Google Geocoding (preferred when a key is configured)
GOOGLE_MAPS_API_KEY = config('GOOGLE_MAPS_API_KEY', default='')
GOOGLE_GEOCODING_URL = config(
    'GOOGLE_GEOCODING_URL',
    default='https://maps.googleapis.com/maps/api/geocode/json'
)

# Nominatim Geocoding (free fallback)
NOMINATIM_BASE_URL = config('NOMINATIM_BASE_URL', default='https://nominatim.openstreetmap.org')
GEOCODING_USER_AGENT = config('GEOCODING_USER_AGENT', default='LastMile-Delivery/1.0')
GEOCODING_TIMEOUT = config('GEOCODING_TIMEOUT', default=5, cast=int)           # seconds
GEOCODING_CACHE_TTL = config('GEOCODING_CACHE_TTL', default=86400, cast=int)   # seconds

# ===========================================
# BUSINESS RULES - LEDGER
# ===========================================
PLATFORM_FEE_PERCENT = config('PLATFORM_FEE_PERCENT', default=10, cast=int)     # %
PLATFORM_FEE_MINIMUM = config('PLATFORM_FEE_MINIMUM', default='0.50')              # currency units
LEDGER_CURRENCY = config('LEDGER_CURRENCY', default='USD')
PAYMENT_MAX_RETRIES = config('PAYMENT_MAX_RETRIES', default=5, cast=int)
PAYMENT_RETRY_BACKOFF_MINUTES = config('PAYMENT_RETRY_BACKOFF_MINUTES', default=30, cast=int)
# 'calendar' = start of day/week/month/year up to now, 'trailing' = last 1/7/30/365 days
EARNINGS_PERIOD_WINDOW = config('EARNINGS_PERIOD_WINDOW', default='calendar')

# ===========================================
# BUSINESS RULES - TRACKING
# ===========================================
LOCATION_RETENTION_DAYS = config('LOCATION_RETENTION_DAYS', default=7, cast=int)
TRACKING_FRESHNESS_SECONDS = config('TRACKING_FRESHNESS_SECONDS', default=300, cast=int)
NEARBY_DEFAULT_RADIUS_M = config('NEARBY_DEFAULT_RADIUS_M', default=10000, cast=int)

# ===========================================
# LOGGING CONFIGURATION
# ===========================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': config('DJANGO_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
        'celery': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
