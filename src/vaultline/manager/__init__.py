"""
Manager subsystem for Vaultline.

Purpose: The application root. Owns the store, the key jar and the
notification bus, and exposes the public operations.

Responsibilities:
- Cache the read connection; invalidate it on rekey/reset/write
- Serialize writers; run background imports on a single worker
- Periodically expire a store whose secret is gone

Non-responsibilities:
- No rendering or CLI formatting (see main.py)
"""

from .manager import Vault

__all__ = ["Vault"]
