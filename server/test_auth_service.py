import pytest

from auth_service import AuthError, make_token_verifier, normalize_name, resolve_identity
from security_utils import mask_wallet_address, redact_sensitive


def _verifier(claims):
    def verify(token):
        if token != 'good-token':
            raise ValueError("invalid token")
        return claims
    return verify


def test_firebase_uses_token_name():
    ident = resolve_identity({'authType': 'firebase', 'token': 'good-token'},
                             _verifier({'uid': 'uid-123456789', 'name': 'Ada', 'email': 'ada@x.io'}))
    assert ident.persistent_id == 'uid-123456789'
    assert ident.display_name == 'Ada'
    assert ident.method == 'firebase'


def test_firebase_name_falls_back_to_email_then_uid():
    ident = resolve_identity({'authType': 'firebase', 'token': 'good-token'},
                             _verifier({'uid': 'abcdefgh', 'email': 'ada@x.io'}))
    assert ident.display_name == 'ada@x.io'
    ident = resolve_identity({'authType': 'firebase', 'token': 'good-token'},
                             _verifier({'uid': 'abcdefgh'}))
    assert ident.display_name == 'Player_abcdef'


def test_firebase_bad_token():
    with pytest.raises(AuthError) as exc:
        resolve_identity({'authType': 'firebase', 'token': 'forged'}, _verifier({'uid': 'u'}))
    assert str(exc.value) == 'Authentication failed'


def test_firebase_missing_token_or_verifier():
    with pytest.raises(AuthError, match='Missing token'):
        resolve_identity({'authType': 'firebase'}, _verifier({'uid': 'u'}))
    with pytest.raises(AuthError, match='not available'):
        resolve_identity({'authType': 'firebase', 'token': 'good-token'}, None)


def test_wallet_login():
    ident = resolve_identity({'authType': 'wallet', 'walletAddress': ' 0xABCDEF0123456789 ', 'username': '  Satoshi  '})
    assert ident.persistent_id == '0xabcdef0123456789'
    assert ident.display_name == 'Satoshi'
    assert ident.method == 'wallet'


def test_wallet_login_derives_name():
    ident = resolve_identity({'authType': 'wallet', 'walletAddress': '0xABCDEF0123456789', 'username': '   '})
    assert ident.display_name == '0xABCD…6789'


def test_wallet_missing_address():
    with pytest.raises(AuthError, match='Missing wallet address'):
        resolve_identity({'authType': 'wallet', 'username': 'x'})


def test_invalid_payloads():
    with pytest.raises(AuthError):
        resolve_identity('token')
    with pytest.raises(AuthError, match='Unsupported'):
        resolve_identity({'authType': 'oauth'})


def test_auth_type_inferred_from_fields():
    assert resolve_identity({'walletAddress': '0xabc'}).method == 'wallet'
    assert resolve_identity({'token': 'good-token'}, _verifier({'uid': 'u1'})).method == 'firebase'


def test_normalize_name():
    assert normalize_name('  Bob ') == 'Bob'
    assert normalize_name('x' * 50) == 'x' * 32
    assert normalize_name('') is None
    assert normalize_name(None) is None
    assert normalize_name(42) is None


def test_verifier_disabled():
    assert make_token_verifier(False) is None


def test_redact_sensitive_hides_tokens():
    data = {'authType': 'firebase', 'token': 'secret', 'nested': [{'idToken': 'x'}]}
    out = redact_sensitive(data)
    assert out['token'] == '***REDACTED***'
    assert out['nested'][0]['idToken'] == '***REDACTED***'
    assert out['authType'] == 'firebase'
    assert data['token'] == 'secret'


def test_mask_wallet_address_short():
    assert mask_wallet_address('0x12') == '0x12'
