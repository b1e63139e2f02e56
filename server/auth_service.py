"""Resolve who a connection is from its player:authenticate payload.

Two login methods with different trust levels:

- firebase: ``{authType: 'firebase', token}``. The ID token is verified by
  firebase-admin; the persistent id is the token's uid. Display name comes
  from the token (name, then email, then ``Player_<uid[:6]>``).
- wallet: ``{authType: 'wallet', walletAddress, username?}``. Self-asserted:
  the address is taken as given (lower-cased) and the client picks its own
  display name, falling back to the shortened address.

Failures raise AuthError whose message is sent back in auth:error. The
token itself is never logged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from constants import MAX_NAME_LENGTH
from security_utils import mask_wallet_address

logger = logging.getLogger(__name__)

# verify(token) -> decoded claims dict; raises on an invalid token
TokenVerifier = Callable[[str], dict]


class AuthError(Exception):
    """Authentication failed; ``str(err)`` is safe to show the client."""


@dataclass(frozen=True)
class Identity:
    persistent_id: str
    display_name: str
    method: str


def normalize_name(value: Any) -> Optional[str]:
    """Strip and cap a client-supplied display name; None when nothing usable is left."""
    if not isinstance(value, str):
        return None
    value = value.strip()[:MAX_NAME_LENGTH].strip()
    return value or None


class FirebaseTokenVerifier:
    """Callable wrapper over firebase_admin.auth.verify_id_token.

    Uses application default credentials unless an app was already
    initialized elsewhere in the process.
    """

    def __init__(self) -> None:
        import firebase_admin
        from firebase_admin import auth

        if not firebase_admin._apps:
            firebase_admin.initialize_app()
        self._auth = auth

    def __call__(self, token: str) -> dict:
        return self._auth.verify_id_token(token)


def make_token_verifier(enabled: bool) -> Optional[TokenVerifier]:
    if not enabled:
        logger.info("Firebase token verification disabled; only wallet login is available")
        return None
    try:
        verifier = FirebaseTokenVerifier()
    except Exception as e:
        logger.error("Firebase token verification unavailable: %s", e)
        return None
    logger.info("Firebase token verification enabled")
    return verifier


def _resolve_firebase(data: dict, verify_token: Optional[TokenVerifier]) -> Identity:
    token = data.get('token')
    if not isinstance(token, str) or not token:
        raise AuthError('Missing token')
    if verify_token is None:
        raise AuthError('Token login is not available on this server')
    try:
        claims = verify_token(token)
    except Exception as e:
        logger.warning("Token verification failed: %s", type(e).__name__)
        raise AuthError('Authentication failed') from e
    uid = (claims or {}).get('uid') or (claims or {}).get('sub')
    if not isinstance(uid, str) or not uid:
        raise AuthError('Authentication failed')
    name = normalize_name(claims.get('name')) or normalize_name(claims.get('email')) or f"Player_{uid[:6]}"
    return Identity(persistent_id=uid, display_name=name, method='firebase')


def _resolve_wallet(data: dict) -> Identity:
    address = data.get('walletAddress')
    if not isinstance(address, str) or not address.strip():
        raise AuthError('Missing wallet address')
    address = address.strip()
    name = normalize_name(data.get('username')) or mask_wallet_address(address)
    return Identity(persistent_id=address.lower(), display_name=name, method='wallet')


def resolve_identity(data: Any, verify_token: Optional[TokenVerifier] = None) -> Identity:
    if not isinstance(data, dict):
        raise AuthError('Invalid authentication request')
    auth_type = data.get('authType')
    if auth_type is None:
        auth_type = 'wallet' if 'walletAddress' in data else 'firebase'
    if auth_type == 'firebase':
        return _resolve_firebase(data, verify_token)
    if auth_type == 'wallet':
        return _resolve_wallet(data)
    raise AuthError(f'Unsupported auth type: {auth_type}')
