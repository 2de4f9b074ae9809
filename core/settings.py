from pathlib import Path
import os
BASE_DIR = Path(__file__).resolve().parent.parent


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-7q1w&p3z!r0c^k5m9x8v2b4n6t0y(j)h-e=f_u+g%s#d@a$lq")


DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() in {"1", "true", "yes", "on"}

ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "").split(",") if h.strip()]



INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    'rest_framework',
    #apps
    'order',
    'payment',
    'courier',

]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "core.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "core.wsgi.application"



DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv("SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}



LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True



STATIC_URL = "static/"


DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Service-to-service calls (invoice and shipment creation) present the shared
# x-api-key; webhooks and storefront-facing quote endpoints opt out per view.
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "core.authentication.ServiceApiKeyAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_THROTTLE_CLASSES": (
        "core.throttling.ClientIpRateThrottle",
    ),
    "UNAUTHENTICATED_USER": None,
}

APP_ENV = os.getenv("APP_ENV", "development")
SERVICE_API_KEY = os.getenv("SERVICE_API_KEY", "")
# Requests per client IP, DRF rate syntax ("60/min"); empty disables throttling.
API_RATE_LIMIT = os.getenv("API_RATE_LIMIT", "60/min") or None

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "order": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "payment": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "courier": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}

# Xendit (invoices + payment callbacks)
XENDIT = {
    "API_BASE_URL": os.getenv("XENDIT_API_BASE_URL", "https://api.xendit.co"),
    "SECRET_KEY": os.getenv("XENDIT_SECRET_KEY", ""),
    "WEBHOOK_TOKEN": os.getenv("XENDIT_WEBHOOK_TOKEN", ""),
}

# Jubelio (rates, shipment creation, tracking callbacks)
JUBELIO_API_BASE_URL = os.getenv("JUBELIO_API_BASE_URL", "")
# Explicit JUBELIO_MODE wins; the legacy JUBELIO_API_BASE_URL=mock sentinel is
# still honoured so existing deployments keep their offline mode.
JUBELIO_MODE = (
    os.getenv("JUBELIO_MODE")
    or ("mock" if JUBELIO_API_BASE_URL.strip().lower() == "mock" else "live")
).strip().lower()

JUBELIO = {
    "API_BASE_URL": JUBELIO_API_BASE_URL,
    "MODE": JUBELIO_MODE,
    "API_TOKEN": os.getenv("JUBELIO_API_TOKEN", ""),
    "CLIENT_ID": os.getenv("JUBELIO_CLIENT_ID", ""),
    "CLIENT_SECRET": os.getenv("JUBELIO_CLIENT_SECRET", ""),
    "USERNAME": os.getenv("JUBELIO_USERNAME", ""),
    "PASSWORD": os.getenv("JUBELIO_PASSWORD", ""),
    "WALLET_ID": os.getenv("JUBELIO_WALLET_ID", ""),
    "WEBHOOK_TOKEN": os.getenv("JUBELIO_WEBHOOK_TOKEN", ""),
    "DEFAULT_SERVICE_CATEGORY_ID": int(os.getenv("DEFAULT_SERVICE_CATEGORY_ID", "1")),
    "ORIGIN": {
        "NAME": os.getenv("ORIGIN_NAME", ""),
        "EMAIL": os.getenv("ORIGIN_EMAIL", ""),
        "PHONE": os.getenv("ORIGIN_PHONE", ""),
        "ADDRESS": os.getenv("ORIGIN_ADDRESS", ""),
        "ZIPCODE": os.getenv("ORIGIN_ZIPCODE", ""),
        "AREA_ID": os.getenv("ORIGIN_AREA_ID", ""),
    },
}
