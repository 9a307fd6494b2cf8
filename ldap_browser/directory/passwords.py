from __future__ import annotations

from ldap3 import (
    HASHED_MD5,
    HASHED_SALTED_MD5,
    HASHED_SALTED_SHA,
    HASHED_SALTED_SHA256,
    HASHED_SALTED_SHA384,
    HASHED_SALTED_SHA512,
    HASHED_SHA,
    HASHED_SHA256,
    HASHED_SHA384,
    HASHED_SHA512,
)
from ldap3.utils.hashed import hashed

PASSWORD_ATTRIBUTE = "userPassword"
DEFAULT_ALGORITHM = "SSHA"

# Scheme names as they appear between braces in userPassword values.
_ALGORITHMS: dict[str, str] = {
    "SSHA": HASHED_SALTED_SHA,
    "SHA": HASHED_SHA,
    "SSHA256": HASHED_SALTED_SHA256,
    "SHA256": HASHED_SHA256,
    "SSHA384": HASHED_SALTED_SHA384,
    "SHA384": HASHED_SHA384,
    "SSHA512": HASHED_SALTED_SHA512,
    "SHA512": HASHED_SHA512,
    "SMD5": HASHED_SALTED_MD5,
    "MD5": HASHED_MD5,
}

_PLAINTEXT = {"CLEAR", "PLAIN", "NONE"}


def supported_algorithms() -> list[str]:
    return list(_ALGORITHMS) + ["CLEAR"]


def hash_password(password: str, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Return a userPassword value such as "{SSHA}..." for the given scheme.

    CLEAR stores the password as-is (the server may hash it itself).
    """
    algo = (algorithm or DEFAULT_ALGORITHM).strip().strip("{}").upper()
    if algo in _PLAINTEXT:
        return password
    try:
        scheme = _ALGORITHMS[algo]
    except KeyError:
        raise ValueError(f"Unsupported password hash algorithm: {algorithm}") from None
    value = hashed(scheme, password)
    if isinstance(value, bytes):
        value = value.decode("ascii")
    # ldap3 writes the scheme in lower case ("{ssha}")
    scheme, sep, digest = value.partition("}")
    return scheme.upper() + sep + digest
