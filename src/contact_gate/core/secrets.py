"""Secret resolution backed by the process environment and ``.env`` files."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from pathlib import Path

from dotenv import dotenv_values

from .errors import ConfigurationError

LOGGER = logging.getLogger(__name__)


class EnvSecretResolver:
    """Resolve named secrets once and cache them for the process lifetime.

    Values from the process environment win over values from ``env_file``.
    Empty values are treated as missing.
    """

    def __init__(
        self,
        env_file: Path | str | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._env_file = Path(env_file) if env_file else None
        self._environ = environ if environ is not None else os.environ
        self._cache: dict[str, str] = {}
        self._file_values: dict[str, str | None] | None = None
        self._lock = threading.Lock()

    def get(self, name: str) -> str:
        """Return the secret called ``name``.

        Raises:
            ConfigurationError: If the secret is not defined anywhere
        """
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None:
                return cached

            value = self._environ.get(name) or self._load_file_values().get(name)
            if not value:
                LOGGER.error("Required secret %s is not configured", name)
                raise ConfigurationError(f"Missing required secret: {name}")

            self._cache[name] = value
            LOGGER.debug("Resolved secret %s", name)
            return value

    def _load_file_values(self) -> dict[str, str | None]:
        if self._file_values is None:
            if self._env_file and self._env_file.is_file():
                self._file_values = dict(dotenv_values(self._env_file))
            else:
                self._file_values = {}
        return self._file_values


__all__ = ["EnvSecretResolver"]
