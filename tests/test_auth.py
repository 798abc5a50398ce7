from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import hashlib
import re
import threading

from py2n_intercom.auth import (
    DigestChallenge,
    _AuthState,
    build_digest_authorization,
    compute_digest_response,
    parse_www_authenticate,
)
from py2n_intercom.const import AUTH_METHOD_DIGEST
from py2n_intercom.models import TwoNCredentials

CREDS = TwoNCredentials(host="10.0.0.2", username="admin", password="secret")


def test_parse_challenge_with_quoted_commas():
    header = 'Digest realm="2N, API", nonce="n1", qop="auth,auth-int", opaque="xyz", algorithm=MD5'

    challenge = parse_www_authenticate(header)

    assert challenge == DigestChallenge(realm="2N, API", nonce="n1", qop="auth,auth-int", opaque="xyz", algorithm="MD5")


def test_parse_picks_digest_among_multiple_challenges():
    challenge = parse_www_authenticate('Basic realm="x", Digest realm="2N", nonce="n2"')

    assert challenge is not None
    assert challenge.realm == "2N"
    assert challenge.nonce == "n2"
    assert challenge.qop is None


def test_parse_rejects_basic_and_incomplete():
    assert parse_www_authenticate(None) is None
    assert parse_www_authenticate('Basic realm="2N"') is None
    assert parse_www_authenticate('Digest realm="2N"') is None


def test_digest_response_matches_rfc2617_example():
    response = compute_digest_response(
        username="Mufasa",
        password="Circle Of Life",
        realm="testrealm@host.com",
        nonce="dcd98b7102dd2f0e8b11d0f600bfb0c093",
        method="GET",
        uri="/dir/index.html",
        nc="00000001",
        cnonce="0a4f113b",
        qop="auth",
    )

    assert response == "6629fae49393a05397450978507c4ef1"


def test_digest_response_without_qop():
    ha1 = hashlib.md5(b"admin:2N:secret").hexdigest()
    ha2 = hashlib.md5(b"GET:/api/system/info").hexdigest()
    expected = hashlib.md5(f"{ha1}:abc:{ha2}".encode()).hexdigest()

    response = compute_digest_response(
        username="admin",
        password="secret",
        realm="2N",
        nonce="abc",
        method="GET",
        uri="/api/system/info",
        nc="00000001",
        cnonce="c",
    )

    assert response == expected


def test_digest_sha256_sess_differs_from_md5():
    kwargs = dict(
        username="admin",
        password="secret",
        realm="2N",
        nonce="abc",
        method="GET",
        uri="/api/system/info",
        nc="00000001",
        cnonce="c",
        qop="auth",
    )

    md5 = compute_digest_response(**kwargs)
    sha = compute_digest_response(algorithm="SHA-256-sess", **kwargs)

    assert len(md5) == 32
    assert len(sha) == 64


def test_build_authorization_fields():
    challenge = DigestChallenge(realm="2N", nonce="abc", qop="auth", opaque="op")

    header = build_digest_authorization(
        username="admin",
        password="secret",
        challenge=challenge,
        method="GET",
        uri="/api/switch/ctrl?switch=1&action=trigger",
        nonce_count=10,
        cnonce="deadbeef",
    )

    assert header.startswith('Digest username="admin"')
    assert 'uri="/api/switch/ctrl?switch=1&action=trigger"' in header
    assert "nc=0000000a" in header
    assert 'cnonce="deadbeef"' in header
    assert 'opaque="op"' in header
    assert "qop=auth" in header
    assert "algorithm=" not in header


def test_build_authorization_without_qop_omits_counter():
    header = build_digest_authorization(
        username="admin",
        password="secret",
        challenge=DigestChallenge(realm="2N", nonce="abc"),
        method="GET",
        uri="/api/system/info",
        nonce_count=1,
        cnonce="deadbeef",
    )

    assert "nc=" not in header
    assert "cnonce" not in header


def test_basic_header_before_challenge():
    state = _AuthState(CREDS)

    assert state.authorization("GET", "/api/system/info") == "Basic YWRtaW46c2VjcmV0"
    assert state.nonce_count == 0


def test_digest_first_contact_sends_nothing():
    state = _AuthState(CREDS, AUTH_METHOD_DIGEST)

    assert state.authorization("GET", "/api/system/info") is None


def test_nonce_count_increments_and_resets_on_new_challenge():
    state = _AuthState(CREDS)
    state.store_challenge(DigestChallenge(realm="2N", nonce="n1", qop="auth"))

    first = state.authorization("GET", "/api/system/info")
    second = state.authorization("GET", "/api/system/info")

    assert "nc=00000001" in first
    assert "nc=00000002" in second
    assert state.nonce_count == 2
    assert re.search(r'cnonce="([0-9a-f]{16})"', first).group(1) != re.search(
        r'cnonce="([0-9a-f]{16})"', second
    ).group(1)

    state.store_challenge(DigestChallenge(realm="2N", nonce="n2", qop="auth"))
    third = state.authorization("GET", "/api/system/info")

    assert 'nonce="n2"' in third
    assert "nc=00000001" in third


def test_reset_forgets_challenge():
    state = _AuthState(CREDS)
    state.store_challenge(DigestChallenge(realm="2N", nonce="n1"))

    state.reset()

    assert state.challenge is None
    assert state.authorization("GET", "/").startswith("Basic ")


def test_concurrent_headers_never_reuse_nonce_count():
    state = _AuthState(CREDS)
    state.store_challenge(DigestChallenge(realm="2N", nonce="n1", qop="auth"))
    barrier = threading.Barrier(8)

    def worker() -> list[int]:
        barrier.wait()
        return [
            int(re.search(r"nc=([0-9a-f]{8})", state.authorization("GET", "/api/log/pull")).group(1), 16)
            for _ in range(25)
        ]

    with ThreadPoolExecutor(max_workers=8) as pool:
        counts = [nc for chunk in pool.map(lambda _: worker(), range(8)) for nc in chunk]

    assert sorted(counts) == list(range(1, 201))
    assert state.nonce_count == 200
