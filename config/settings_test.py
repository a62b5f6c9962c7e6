import tempfile
from pathlib import Path

from config.settings import *  # noqa: F401,F403

# File-backed so threads in TransactionTestCase share one database. IMMEDIATE
# transactions take the write lock at BEGIN, so concurrent writers wait in turn.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": str(Path(tempfile.gettempdir()) / "device-intake.sqlite3"),
        "OPTIONS": {"transaction_mode": "IMMEDIATE", "timeout": 20},
        "TEST": {"NAME": str(Path(tempfile.gettempdir()) / "device-intake-test.sqlite3")},
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

REST_FRAMEWORK = {
    **REST_FRAMEWORK,  # noqa: F405
    "DEFAULT_THROTTLE_CLASSES": [],
}

INTAKE_SKU_MATCHER = ""
INTAKE_AUTO_RETRY = False
