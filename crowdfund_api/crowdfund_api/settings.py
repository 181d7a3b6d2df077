import os
from datetime import timedelta
from pathlib import Path

import environ

BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, ['localhost', '127.0.0.1']),
)
environ.Env.read_env(os.path.join(BASE_DIR, '.env'))

SECRET_KEY = env('SECRET_KEY', default='django-insecure-change-me')
DEBUG = env('DEBUG')
ALLOWED_HOSTS = env('ALLOWED_HOSTS')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    'rest_framework',
    'rest_framework_simplejwt',
    'django_filters',
    'drf_yasg',
    'auditlog',

    'accounts',
    'projects',
    'escrow',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'auditlog.middleware.AuditlogMiddleware',
    'crowdfund_api.middleware.UserActivityLoggingMiddleWare',
]

ROOT_URLCONF = 'crowdfund_api.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'crowdfund_api.wsgi.application'

DATABASES = {
    'default': env.db('DATABASE_URL', default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
}

AUTH_USER_MODEL = 'accounts.CustomUser'

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework_simplejwt.authentication.JWTAuthentication',
    ),
    'DEFAULT_PERMISSION_CLASSES': (
        'rest_framework.permissions.IsAuthenticated',
    ),
    'DEFAULT_FILTER_BACKENDS': (
        'django_filters.rest_framework.DjangoFilterBackend',
    ),
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=env.int('JWT_ACCESS_MINUTES', default=30)),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=env.int('JWT_REFRESH_DAYS', default=7)),
    'AUTH_HEADER_TYPES': ('Bearer',),
}

EMAIL_BACKEND = env('EMAIL_BACKEND', default='django.core.mail.backends.console.EmailBackend')
EMAIL_HOST = env('EMAIL_HOST', default='localhost')
EMAIL_PORT = env.int('EMAIL_PORT', default=587)
EMAIL_HOST_USER = env('EMAIL_HOST_USER', default='')
EMAIL_HOST_PASSWORD = env('EMAIL_HOST_PASSWORD', default='')
EMAIL_USE_TLS = env.bool('EMAIL_USE_TLS', default=True)
DEFAULT_FROM_EMAIL = env('DEFAULT_FROM_EMAIL', default='no-reply@crowdfund.local')

SITE_NAME = env('SITE_NAME', default='Crowdfund')
FRONTEND_DOMAIN = env('FRONTEND_DOMAIN', default='http://localhost:3000')

# Remote ledger/escrow service
ESCROW_GATEWAY = {
    'PROVIDER': env('ESCROW_GATEWAY_PROVIDER', default='trustless_work'),
    'BASE_URL': env('TRUSTLESS_WORK_API_URL', default='https://api.trustlesswork.com'),
    'API_KEY': env('TRUSTLESS_WORK_API_KEY', default=''),
    'TIMEOUT': env.float('ESCROW_GATEWAY_TIMEOUT', default=15.0),
    'MAX_RETRIES': env.int('ESCROW_GATEWAY_MAX_RETRIES', default=3),
    'BACKOFF_FACTOR': env.float('ESCROW_GATEWAY_BACKOFF_FACTOR', default=0.5),
    'PLATFORM_FEE': env.float('PLATFORM_FEE', default=5.0),
    'TRUSTLINE_ADDRESS': env('USDC_TOKEN_ADDRESS', default='CBIELTK6YBZJU5UP2WWQEUCYKLPU6AUNZ2BQ4WWFEIE3USCIHMXQDAMA'),
    'TRUSTLINE_DECIMALS': env.int('USDC_TOKEN_DECIMALS', default=10000000),
    'ROLES': {
        'approver': env('ESCROW_APPROVER_ADDRESS', default=''),
        'service_provider': env('ESCROW_SERVICE_PROVIDER_ADDRESS', default=''),
        'platform_address': env('ESCROW_PLATFORM_ADDRESS', default=''),
        'release_signer': env('ESCROW_RELEASE_SIGNER_ADDRESS', default=''),
        'dispute_resolver': env('ESCROW_DISPUTE_RESOLVER_ADDRESS', default=''),
        'receiver': env('ESCROW_RECEIVER_ADDRESS', default=''),
    },
}

CROWDFUNDING = {
    'VOTING_PERIOD_DAYS': env.int('VOTING_PERIOD_DAYS', default=30),
    'FUNDING_PERIOD_DAYS': env.int('FUNDING_PERIOD_DAYS', default=90),
    'VOTE_THRESHOLD': env.int('VOTE_THRESHOLD', default=100),
    'POSITIVE_VOTE_RATIO': env.float('POSITIVE_VOTE_RATIO', default=0.6),
    'CURRENCY': env('FUNDING_CURRENCY', default='USD'),
    'PREPARE_TOKEN_MAX_AGE': env.int('PREPARE_TOKEN_MAX_AGE', default=3600),
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname}:{asctime}:{name}:{message}',
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
        'level': env('LOG_LEVEL', default='INFO'),
    },
    'loggers': {
        'audit': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'reconciliation': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
}
