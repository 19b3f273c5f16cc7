"""
Configuration module for CustodySeal.

Settings are read from environment variables into an explicit Settings
object that is passed to the components at construction. JSON
configuration files (the jurisdiction table) are loaded through a
thread-safe TTL cache.

Environment variables:
    CUSTODYSEAL_ENV                 dev|stage|prod
    CUSTODYSEAL_ARTIFACT_ANCHOR     SHA-256 hex anchor of the release artifact
    CUSTODYSEAL_ANCHOR_FILE         anchor in sha256sum format (overrides the above)
    CUSTODYSEAL_ARTIFACT_PATH       artifact verified at startup
    CUSTODYSEAL_VERIFY_TIMEOUT      artifact read timeout in seconds
    CUSTODYSEAL_VAULT_BACKEND       memory|sqlite
    CUSTODYSEAL_VAULT_PATH          SQLite vault file
    CUSTODYSEAL_JURISDICTION_TABLE  JSON bounding-box table
    CUSTODYSEAL_KEY_STORE_PATH      wrapped seal key escrow file
    CUSTODYSEAL_MASTER_KEY          base64 32-byte key wrapping the escrow
    LOG_LEVEL, LOG_JSON, LOG_FILE   logging
"""

import json
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

# Published anchor of the reference release build
DEFAULT_ARTIFACT_ANCHOR = "56937d92ecf2f23bb9f11dbd619c3ce13f324ead1765311fccd18b6dbf209466"

DEFAULT_VERIFY_TIMEOUT = 30.0
DEFAULT_VAULT_PATH = "data/custodyseal_vault.db"

CONFIG_CACHE_TTL = int(os.getenv("CONFIG_CACHE_TTL", "60"))


def _truthy(value: Optional[str]) -> bool:
    return (value or "").lower() in ("1", "true", "yes")


def read_anchor_file(path: str) -> str:
    """
    Read an anchor from a file in ``sha256sum`` output format
    (``<hex>  <filename>``) or a bare hex line.
    """
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                return line.split()[0]
    raise ValueError(f"no anchor found in {path}")


@dataclass(frozen=True)
class Settings:
    env: str = "dev"
    artifact_anchor: str = DEFAULT_ARTIFACT_ANCHOR
    artifact_path: Optional[str] = None
    verify_timeout_seconds: float = DEFAULT_VERIFY_TIMEOUT
    vault_backend: str = "memory"
    vault_path: str = DEFAULT_VAULT_PATH
    jurisdiction_table_path: Optional[str] = None
    key_store_path: Optional[str] = None
    master_key_b64: Optional[str] = field(default=None, repr=False)
    log_level: str = "INFO"
    log_json: bool = True
    log_file: Optional[str] = None

    def __post_init__(self):
        if self.vault_backend not in ("memory", "sqlite"):
            raise ValueError("vault backend must be 'memory' or 'sqlite'")
        if self.verify_timeout_seconds <= 0:
            raise ValueError("verify timeout must be positive")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        env = os.environ if environ is None else environ

        anchor = env.get("CUSTODYSEAL_ARTIFACT_ANCHOR") or DEFAULT_ARTIFACT_ANCHOR
        anchor_file = env.get("CUSTODYSEAL_ANCHOR_FILE")
        if anchor_file:
            anchor = read_anchor_file(anchor_file)

        return cls(
            env=env.get("CUSTODYSEAL_ENV", "dev"),
            artifact_anchor=anchor,
            artifact_path=env.get("CUSTODYSEAL_ARTIFACT_PATH") or None,
            verify_timeout_seconds=float(env.get("CUSTODYSEAL_VERIFY_TIMEOUT", DEFAULT_VERIFY_TIMEOUT)),
            vault_backend=env.get("CUSTODYSEAL_VAULT_BACKEND", "memory"),
            vault_path=env.get("CUSTODYSEAL_VAULT_PATH", DEFAULT_VAULT_PATH),
            jurisdiction_table_path=env.get("CUSTODYSEAL_JURISDICTION_TABLE") or None,
            key_store_path=env.get("CUSTODYSEAL_KEY_STORE_PATH") or None,
            master_key_b64=env.get("CUSTODYSEAL_MASTER_KEY") or None,
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_json=_truthy(env.get("LOG_JSON", "true")),
            log_file=env.get("LOG_FILE") or None,
        )

    def is_production(self) -> bool:
        return self.env == "prod"


# ============================================================
# Cached Configuration Loaders
# ============================================================

class CachedConfig:
    """
    Thread-safe cached configuration loader.
    Reloads configuration files periodically based on TTL.
    """

    def __init__(self, ttl_seconds: int = 60):
        self._cache: Dict[str, Any] = {}
        self._timestamps: Dict[str, float] = {}
        self._lock = threading.RLock()
        self._ttl = ttl_seconds

    def _is_stale(self, key: str) -> bool:
        if key not in self._timestamps:
            return True
        return (time.time() - self._timestamps[key]) > self._ttl

    def get_json(self, path: str, force_reload: bool = False) -> Dict[str, Any]:
        """
        Load JSON file with caching.
        Returns cached version if within TTL, otherwise reloads.
        """
        with self._lock:
            if not force_reload and path in self._cache and not self._is_stale(path):
                return self._cache[path]

            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)

            self._cache[path] = data
            self._timestamps[path] = time.time()
            return data

    def invalidate(self, path: Optional[str] = None) -> None:
        """Invalidate cache for a specific path or all paths."""
        with self._lock:
            if path:
                self._cache.pop(path, None)
                self._timestamps.pop(path, None)
            else:
                self._cache.clear()
                self._timestamps.clear()


_config_cache = CachedConfig(ttl_seconds=CONFIG_CACHE_TTL)


def load_json_cached(path: str) -> Dict[str, Any]:
    """Load JSON file with caching."""
    return _config_cache.get_json(path)


def validate_config(settings: Settings) -> Dict[str, bool]:
    """
    Check that every configured file exists.
    Returns dict of name -> exists.
    """
    paths = {}
    if settings.artifact_path:
        paths["artifact"] = settings.artifact_path
    if settings.jurisdiction_table_path:
        paths["jurisdiction_table"] = settings.jurisdiction_table_path
    if settings.vault_backend == "sqlite":
        paths["vault_dir"] = str(Path(settings.vault_path).parent)
    return {name: Path(path).exists() for name, path in paths.items()}
