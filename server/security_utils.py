"""Helpers for keeping credentials out of logs.

Authentication payloads carry bearer tokens and wallet signatures. Anything
that logs a raw client payload runs it through ``redact_sensitive`` first.
"""

from __future__ import annotations

from typing import Any, Iterable, Set


DEFAULT_SENSITIVE_KEYS: Set[str] = {"token", "idtoken", "signature", "secret", "password"}


def redact_sensitive(data: Any, keys: Iterable[str] | None = None, mask: str = "***REDACTED***") -> Any:
    """Return a deep copy of ``data`` with sensitive dict values replaced by ``mask``.

    Key matching is case-insensitive, so ``idToken`` and ``idtoken`` are both
    caught. Lists and tuples are walked; other values are returned as-is.
    """
    sens_lower = {k.lower() for k in (keys or DEFAULT_SENSITIVE_KEYS)}

    def _walk(node: Any) -> Any:
        if isinstance(node, dict):
            return {
                k: (mask if isinstance(k, str) and k.lower() in sens_lower else _walk(v))
                for k, v in node.items()
            }
        if isinstance(node, list):
            return [_walk(x) for x in node]
        if isinstance(node, tuple):
            return tuple(_walk(x) for x in node)
        return node

    return _walk(data)


def mask_wallet_address(address: str) -> str:
    """Short display form of a wallet address, e.g. ``0x1234…abcd``."""
    if len(address) <= 10:
        return address
    return f"{address[:6]}…{address[-4:]}"
