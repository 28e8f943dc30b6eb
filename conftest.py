"""Root conftest: test settings must be in the environment before any module imports."""
from __future__ import annotations

import os

_TEST_ENV = {
    "POSTGRES_USER": "chat",
    "POSTGRES_PASSWORD": "chat",
    "POSTGRES_DB": "chat_test",
    "JWT_SECRET": "test-secret",
    "CHAT_FANOUT_MODE": "local",
}

for key, value in _TEST_ENV.items():
    os.environ.setdefault(key, value)
