from __future__ import annotations
"""
vault.config — configuration for the custodial vault service and its CLI.

Covers:
- Custody identity derivation seed
- Beneficiary auto-registration on claim
- Optional full-scan invariant checks after every mutation
- Logging level/format
- Default paths for the CLI state file and the JSON-lines audit mirror

Environment overrides (all optional; sensible defaults provided):

  VAULT_SEED=vault
  VAULT_AUTO_REGISTER=1
  VAULT_CHECK_INVARIANTS=0
  VAULT_LOG_LEVEL=INFO
  VAULT_LOG_FORMAT=text          # text | json
  VAULT_STATE_PATH=vault_state.json
  VAULT_AUDIT_PATH=              # empty → no audit mirror

You can also load from a JSON or YAML file via `VAULT_CONFIG_FILE=/path/to/config.(json|yaml|yml)`.
File values override defaults; environment overrides the file.
"""


from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional
import json
import os
from pathlib import Path

import yaml


_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")
_LOG_FORMATS = ("text", "json")


@dataclass
class VaultConfig:
    """Top-level configuration container."""
    seed: str = "vault"                  # mixed into custody address derivation
    auto_register: bool = True           # register beneficiaries before paying them
    check_invariants: bool = False       # full-scan consistency check after each mutation
    log_level: str = "INFO"
    log_format: str = "text"
    state_path: str = "vault_state.json"
    audit_path: Optional[str] = None

    def validate(self) -> None:
        if not self.seed:
            raise ValueError("seed must be a non-empty string.")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {_LOG_LEVELS} (got {self.log_level!r}).")
        if self.log_format not in _LOG_FORMATS:
            raise ValueError(f"log_format must be one of {_LOG_FORMATS} (got {self.log_format!r}).")
        if not self.state_path:
            raise ValueError("state_path must be a non-empty path.")

    @property
    def seed_bytes(self) -> bytes:
        return self.seed.encode("utf-8")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------- Loaders --------------------------


def _parse_bool(name: str, v: Any, default: bool) -> bool:
    if v is None or v == "":
        return default
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid bool for {name}: {v!r}")


def _getenv_bool(name: str, default: bool) -> bool:
    return _parse_bool(name, os.getenv(name), default)


def _getenv_str(name: str, default: Optional[str]) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    return v


def from_env(base: Optional[VaultConfig] = None, prefix: str = "VAULT_") -> VaultConfig:
    """
    Build a VaultConfig from environment variables, optionally layering on top of `base`.
    """
    cfg = base or VaultConfig()

    audit = _getenv_str(f"{prefix}AUDIT_PATH", cfg.audit_path)

    new_cfg = VaultConfig(
        seed=_getenv_str(f"{prefix}SEED", cfg.seed) or cfg.seed,
        auto_register=_getenv_bool(f"{prefix}AUTO_REGISTER", cfg.auto_register),
        check_invariants=_getenv_bool(f"{prefix}CHECK_INVARIANTS", cfg.check_invariants),
        log_level=(_getenv_str(f"{prefix}LOG_LEVEL", cfg.log_level) or cfg.log_level).upper(),
        log_format=(_getenv_str(f"{prefix}LOG_FORMAT", cfg.log_format) or cfg.log_format).lower(),
        state_path=_getenv_str(f"{prefix}STATE_PATH", cfg.state_path) or cfg.state_path,
        audit_path=audit or None,
    )
    new_cfg.validate()
    return new_cfg


def from_file(path: str | os.PathLike[str]) -> VaultConfig:
    """
    Load configuration from a JSON or YAML file.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")
    if not isinstance(data, dict):
        raise ValueError(f"config file {p} must contain a mapping")

    defaults = VaultConfig()
    cfg = VaultConfig(
        seed=str(data.get("seed", defaults.seed)),
        auto_register=_parse_bool("auto_register", data.get("auto_register"), defaults.auto_register),
        check_invariants=_parse_bool("check_invariants", data.get("check_invariants"), defaults.check_invariants),
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
        log_format=str(data.get("log_format", defaults.log_format)).lower(),
        state_path=str(data.get("state_path", defaults.state_path)),
        audit_path=data.get("audit_path", defaults.audit_path),
    )
    cfg.validate()
    return cfg


def load() -> VaultConfig:
    """
    Load configuration using the following precedence:
      1) File at $VAULT_CONFIG_FILE (JSON/YAML)
      2) Environment variables (VAULT_*), applied on top of defaults or file values
    """
    file_path = os.getenv("VAULT_CONFIG_FILE")
    base = from_file(file_path) if file_path else VaultConfig()
    return from_env(base=base)


def pretty(cfg: Optional[VaultConfig] = None) -> str:
    """Return a human-readable JSON string of the current config."""
    obj = (cfg or load()).to_dict()
    return json.dumps(obj, indent=2, sort_keys=True)


__all__ = [
    "VaultConfig",
    "from_env",
    "from_file",
    "load",
    "pretty",
]
