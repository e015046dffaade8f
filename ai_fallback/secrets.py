"""Credential lookup by secret reference.

Backend configs only carry the *name* of a secret. The credential itself is
resolved at call time, so rotating a key never touches the config store.
"""

import os
from collections.abc import Mapping
from typing import Protocol


class SecretStore(Protocol):
    def lookup(self, secret_ref: str) -> str | None: ...


class EnvSecretStore:
    """Reads credentials from process environment variables (.env already loaded)."""

    def lookup(self, secret_ref: str) -> str | None:
        value = os.environ.get(secret_ref)
        if not value:
            return None
        return value


class MappingSecretStore:
    def __init__(self, secrets: Mapping[str, str]) -> None:
        self._secrets = dict(secrets)

    def lookup(self, secret_ref: str) -> str | None:
        return self._secrets.get(secret_ref) or None


_default_store: SecretStore | None = None


def get_secret_store() -> SecretStore:
    global _default_store
    if _default_store is None:
        _default_store = EnvSecretStore()
    return _default_store
