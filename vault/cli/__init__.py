"""
vault.cli — command-line tools for the custodial vault.

Run as `python -m vault.cli.vaultctl --help` (or the `vaultctl` console script).
"""

__all__ = ["vaultctl"]
