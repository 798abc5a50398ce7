"""Basic/Digest authentication state for the 2N HTTP API.

Digest is implemented client-side (RFC 7616 subset; MD5/SHA-* and -sess
variants). The device answers an unauthenticated or Basic request with a
401 challenge; the challenge is cached and reused until the device rejects
it again.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import os
import re
import threading

import aiohttp

from .const import AUTH_METHOD_BASIC
from .models import TwoNCredentials

_digest_kv_split = re.compile(r",(?=(?:[^\"]*\"[^\"]*\")*[^\"]*$)")


@dataclass(frozen=True, slots=True)
class DigestChallenge:
    """Parameters of a `WWW-Authenticate: Digest ...` challenge."""

    realm: str
    nonce: str
    qop: str | None = None
    opaque: str | None = None
    algorithm: str | None = None


def parse_www_authenticate(header_value: str | None) -> DigestChallenge | None:
    """Parse a Digest WWW-Authenticate header.

    Returns None for non-Digest challenges or when realm/nonce are missing.
    This is a permissive parser good enough for typical embedded devices.
    """

    if not header_value:
        return None

    # Some servers send multiple challenges; pick the Digest one.
    hv = header_value.strip()
    idx = hv.lower().find("digest ")
    if idx < 0:
        return None
    hv = hv[idx + len("digest ") :].strip()

    out: dict[str, str] = {}
    for part in _digest_kv_split.split(hv):
        part = part.strip()
        if not part or "=" not in part:
            continue
        k, v = part.split("=", 1)
        k = k.strip().lower()
        v = v.strip()
        if v.startswith('"') and v.endswith('"') and len(v) >= 2:
            v = v[1:-1]
        out[k] = v

    realm = out.get("realm")
    nonce = out.get("nonce")
    if not realm or not nonce:
        return None

    return DigestChallenge(
        realm=realm,
        nonce=nonce,
        qop=out.get("qop") or None,
        opaque=out.get("opaque") or None,
        algorithm=out.get("algorithm") or None,
    )


def _hash_for_algorithm(algorithm: str | None):
    alg = (algorithm or "MD5").upper()
    if alg.startswith("MD5"):
        return hashlib.md5
    if alg.startswith("SHA-256"):
        return hashlib.sha256
    if alg.startswith("SHA-512"):
        return hashlib.sha512
    if alg.startswith("SHA"):
        return hashlib.sha1
    return hashlib.md5


def _h(hash_ctor, data: str) -> str:
    return hash_ctor(data.encode("utf-8")).hexdigest()


def _select_qop(qop_raw: str | None) -> str | None:
    if not qop_raw:
        return None
    qops = [q.strip() for q in qop_raw.split(",") if q.strip()]
    if "auth" in qops:
        return "auth"
    return qops[0] if qops else None


def compute_digest_response(
    *,
    username: str,
    password: str,
    realm: str,
    nonce: str,
    method: str,
    uri: str,
    nc: str,
    cnonce: str,
    qop: str | None = None,
    algorithm: str | None = None,
) -> str:
    """Return the hex `response` value for a Digest Authorization header."""

    hash_ctor = _hash_for_algorithm(algorithm)

    # HA1 / HA2 per RFC 7616
    ha1 = _h(hash_ctor, f"{username}:{realm}:{password}")
    if (algorithm or "").upper().endswith("-SESS"):
        ha1 = _h(hash_ctor, f"{ha1}:{nonce}:{cnonce}")
    ha2 = _h(hash_ctor, f"{method}:{uri}")

    if qop:
        return _h(hash_ctor, f"{ha1}:{nonce}:{nc}:{cnonce}:{qop}:{ha2}")
    return _h(hash_ctor, f"{ha1}:{nonce}:{ha2}")


def build_digest_authorization(
    *,
    username: str,
    password: str,
    challenge: DigestChallenge,
    method: str,
    uri: str,
    nonce_count: int,
    cnonce: str,
) -> str:
    """Build the full `Digest ...` Authorization header value."""

    qop = _select_qop(challenge.qop)
    nc = f"{nonce_count:08x}"
    response = compute_digest_response(
        username=username,
        password=password,
        realm=challenge.realm,
        nonce=challenge.nonce,
        method=method,
        uri=uri,
        nc=nc,
        cnonce=cnonce,
        qop=qop,
        algorithm=challenge.algorithm,
    )

    # Build header string (quote most values)
    header_parts: list[str] = []
    header_parts.append(f'Digest username="{username}"')
    header_parts.append(f'realm="{challenge.realm}"')
    header_parts.append(f'nonce="{challenge.nonce}"')
    header_parts.append(f'uri="{uri}"')
    header_parts.append(f'response="{response}"')

    if challenge.algorithm:
        header_parts.append(f"algorithm={challenge.algorithm}")
    if challenge.opaque:
        header_parts.append(f'opaque="{challenge.opaque}"')
    if qop:
        header_parts.append(f"qop={qop}")
        header_parts.append(f"nc={nc}")
        header_parts.append(f'cnonce="{cnonce}"')

    return ", ".join(header_parts)


class _AuthState:
    """Cached challenge and nonce counter of one client instance.

    Header computation runs under a lock so concurrent requests never reuse
    a nonce count.
    """

    def __init__(self, credentials: TwoNCredentials, auth_method: str = AUTH_METHOD_BASIC) -> None:
        self._username = credentials.username
        self._password = credentials.password
        self._auth_method = auth_method
        self._basic = aiohttp.BasicAuth(credentials.username, credentials.password).encode()
        self._lock = threading.Lock()
        self._challenge: DigestChallenge | None = None
        self._nonce_count = 0

    @property
    def challenge(self) -> DigestChallenge | None:
        return self._challenge

    @property
    def nonce_count(self) -> int:
        return self._nonce_count

    def store_challenge(self, challenge: DigestChallenge) -> None:
        with self._lock:
            self._challenge = challenge
            self._nonce_count = 0

    def reset(self) -> None:
        with self._lock:
            self._challenge = None
            self._nonce_count = 0

    def authorization(self, method: str, uri: str) -> str | None:
        """Return the Authorization header for the next attempt.

        Digest when a challenge is cached, otherwise Basic (or nothing when
        first contact is configured to wait for the challenge).
        """

        with self._lock:
            if self._challenge is None:
                if self._auth_method == AUTH_METHOD_BASIC:
                    return self._basic
                return None

            self._nonce_count += 1
            return build_digest_authorization(
                username=self._username,
                password=self._password,
                challenge=self._challenge,
                method=method,
                uri=uri,
                nonce_count=self._nonce_count,
                cnonce=os.urandom(8).hex(),
            )
