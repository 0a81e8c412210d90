from __future__ import annotations

"""
vault.version — package version string.

`VAULT_VERSION` in the environment overrides the built-in version (useful for
packaging/CI).
"""


import os

# Bump this on intentional releases.
BASE_VERSION = "0.1.0"


def build_version() -> str:
    return os.getenv("VAULT_VERSION") or BASE_VERSION


__version__ = build_version()

__all__ = ["BASE_VERSION", "build_version", "__version__"]
