import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("FEEDSYNC_SECRET_KEY", "feedsync-insecure-key")
DEBUG = os.environ.get("FEEDSYNC_DEBUG", "false").lower() == "true"
ALLOWED_HOSTS = []

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "feedsync",
]

DATABASES = {
    "default": {
        "ENGINE": os.environ.get("FEEDSYNC_DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.environ.get("FEEDSYNC_DB_NAME", str(BASE_DIR / "feedsync.sqlite3")),
        "USER": os.environ.get("FEEDSYNC_DB_USER", ""),
        "PASSWORD": os.environ.get("FEEDSYNC_DB_PASSWORD", ""),
        "HOST": os.environ.get("FEEDSYNC_DB_HOST", ""),
        "PORT": os.environ.get("FEEDSYNC_DB_PORT", ""),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = os.environ.get("FEEDSYNC_TIMEZONE", "UTC")

# Snapshot storage for differential sync ("file" or "database")
FEEDSYNC_SNAPSHOT_BACKEND = os.environ.get("FEEDSYNC_SNAPSHOT_BACKEND", "file")
FEEDSYNC_SNAPSHOT_DIR = os.environ.get("FEEDSYNC_SNAPSHOT_DIR", str(BASE_DIR / "downloads" / "snapshots"))
FEEDSYNC_DOWNLOADS_DIR = os.environ.get("FEEDSYNC_DOWNLOADS_DIR") or None

# Remote fetch
FEEDSYNC_FETCH_MAX_ATTEMPTS = int(os.environ.get("FEEDSYNC_FETCH_MAX_ATTEMPTS", "3"))
FEEDSYNC_FETCH_BACKOFF_BASE = float(os.environ.get("FEEDSYNC_FETCH_BACKOFF_BASE", "1.0"))
FEEDSYNC_FETCH_TIMEOUT = float(os.environ.get("FEEDSYNC_FETCH_TIMEOUT", "60"))

FEEDSYNC_PRIORITY_CACHE_TTL = float(os.environ.get("FEEDSYNC_PRIORITY_CACHE_TTL", "300"))

FEEDSYNC_DEFAULT_CATALOG_SYNC_TIME = os.environ.get("FEEDSYNC_DEFAULT_CATALOG_SYNC_TIME", "02:00")
FEEDSYNC_DEFAULT_INVENTORY_INTERVAL_MINUTES = int(
    os.environ.get("FEEDSYNC_DEFAULT_INVENTORY_INTERVAL_MINUTES", "60")
)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "loggers": {
        "feedsync": {
            "handlers": ["console"],
            "level": os.environ.get("FEEDSYNC_LOG_LEVEL", "INFO"),
            "propagate": True,
        },
        "apscheduler": {
            "handlers": ["console"],
            "level": "WARNING",
        },
    },
}
