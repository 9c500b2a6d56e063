import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

# NOTE: In production, SECRET_KEY must come from environment.
SECRET_KEY = os.environ.get('SECRET_KEY', 'django-insecure-konveksi-key')

# DEBUG defaults to True for dev; set DEBUG=0/false in production.
DEBUG = str(os.environ.get('DEBUG', '1')).lower() in {'1', 'true', 'yes'}

_env_allowed = os.environ.get('ALLOWED_HOSTS')
ALLOWED_HOSTS: list[str] = (
    [h for h in (_env_allowed.split() if _env_allowed else ['*']) if h]
)
# Trust HTTPS scheme from reverse proxies
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')
CSRF_TRUSTED_ORIGINS: list[str] = []

# If DOMAIN is provided (e.g., konveksi.example.com), trust it for HTTPS.
_domain = os.environ.get('DOMAIN')
if _domain:
    _domain = _domain.replace('http://', '').replace('https://', '').strip('/')
    CSRF_TRUSTED_ORIGINS += [
        f"https://{_domain}",
        f"https://www.{_domain}",
    ]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'users',
    'inventory',
    'orders',
    'production',
    'maintenance',
    'csp',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'csp.middleware.CSPMiddleware',
]

# Content Security Policy settings for django-csp >= 4.0
CONTENT_SECURITY_POLICY = {
    "DIRECTIVES": {
        "default-src": ["'self'"],
        "script-src": ["'self'"],
        "style-src": ["'self'", "'unsafe-inline'"],
        "img-src": ["'self'", "data:"],
        "connect-src": ["'self'"],
    }
}

ROOT_URLCONF = 'Konveksi.urls'

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
    }
]

WSGI_APPLICATION = 'Konveksi.wsgi.application'

AUTH_USER_MODEL = 'users.CustomUser'

# Default DB is SQLite. Override with env vars for PostgreSQL.
_db_engine = os.environ.get('DB_ENGINE', 'django.db.backends.sqlite3')
if _db_engine == 'django.db.backends.sqlite3':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.environ.get('DJANGO_DB_NAME', str(BASE_DIR / 'db.sqlite3')),
            # Writers take the lock at BEGIN so row locks are not needed for correctness.
            'OPTIONS': {'transaction_mode': 'IMMEDIATE', 'timeout': 20},
            'TEST': {'NAME': str(BASE_DIR / 'test_db.sqlite3')},
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': _db_engine,
            'NAME': os.environ.get('DB_NAME', 'konveksi'),
            'USER': os.environ.get('DB_USER', 'konveksi'),
            'PASSWORD': os.environ.get('DB_PASSWORD', ''),
            'HOST': os.environ.get('DB_HOST', '127.0.0.1'),
            'PORT': os.environ.get('DB_PORT', '5432'),
        }
    }

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.environ.get('TIME_ZONE', 'Asia/Jakarta')
USE_I18N = True
USE_TZ = True

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

SESSION_EXPIRE_AT_BROWSER_CLOSE = False
SESSION_COOKIE_AGE = 60 * 60 * 24 * 14  # 14 days

# No login page of our own; staff sign in through the admin.
LOGIN_URL = '/admin/login/'

# --- Production progress / material ledger ---
KONVEKSI_MAX_PROGRESS_PHOTOS = int(os.environ.get('KONVEKSI_MAX_PROGRESS_PHOTOS', '5'))
# Fabric-only reports (0 pieces) after an order is completed or shipped
KONVEKSI_ALLOW_FABRIC_AFTER_COMPLETION = str(
    os.environ.get('KONVEKSI_ALLOW_FABRIC_AFTER_COMPLETION', '1')
).lower() in {'1', 'true', 'yes'}
# 0 = links never expire
KONVEKSI_ORDER_LINK_TTL_DAYS = int(os.environ.get('KONVEKSI_ORDER_LINK_TTL_DAYS', '30'))
KONVEKSI_STOCK_TOLERANCE = os.environ.get('KONVEKSI_STOCK_TOLERANCE', '0.001')

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        name: {'level': LOG_LEVEL}
        for name in ('inventory', 'orders', 'production', 'maintenance', 'utils')
    },
}

# In DEBUG, send report-only header so development isn't blocked by CSP
if DEBUG:
    CONTENT_SECURITY_POLICY_REPORT_ONLY = CONTENT_SECURITY_POLICY
    CONTENT_SECURITY_POLICY = None

# --- Static files: enable WhiteNoise in production ---
if not DEBUG:
    idx = MIDDLEWARE.index('django.middleware.security.SecurityMiddleware')
    MIDDLEWARE.insert(idx + 1, 'whitenoise.middleware.WhiteNoiseMiddleware')
    STORAGES = {
        "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
        "staticfiles": {"BACKEND": "whitenoise.storage.CompressedStaticFilesStorage"},
    }
