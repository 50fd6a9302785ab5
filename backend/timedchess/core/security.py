import hashlib
import hmac
from collections.abc import Iterable

from jose import jwe
from jose.exceptions import JOSEError

from timedchess.core.config import get_settings
from timedchess.core.errors import Unauthorized

ENCRYPTION = "A256GCM"
ALGORITHM = "dir"


def _identity_key() -> bytes:
    settings = get_settings()
    return hashlib.sha256(settings.identity_secret_key.encode("utf-8")).digest()


def encrypt_identity(identity: str) -> str:
    token = jwe.encrypt(
        identity.encode("utf-8"),
        _identity_key(),
        encryption=ENCRYPTION,
        algorithm=ALGORITHM,
    )
    return token.decode("ascii") if isinstance(token, bytes) else token


def decrypt_identity(proof: str) -> str | None:
    if not isinstance(proof, str) or not proof.strip():
        return None
    try:
        plaintext = jwe.decrypt(proof.strip(), _identity_key())
    except (JOSEError, ValueError, TypeError, KeyError):
        return None
    if plaintext is None:
        return None
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError:
        return None


def identities_match(candidate: str | None, expected: str | None) -> bool:
    if not candidate or not expected:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


def match_identity(proof: str, allowed: Iterable[str | None]) -> str | None:
    identity = decrypt_identity(proof)
    if identity is None:
        return None
    for expected in allowed:
        if identities_match(identity, expected):
            return identity
    return None


def authorize(proof: str, allowed: Iterable[str | None], message: str | None = None) -> str:
    """Decrypt ``proof`` and return the identity if it is one of ``allowed``.

    A proof that fails to decrypt is treated exactly like a mismatch.
    """
    identity = match_identity(proof, allowed)
    if identity is None:
        raise Unauthorized(message)
    return identity


def verify_check_string(check_string: str, encrypted_check_string: str) -> bool:
    return identities_match(decrypt_identity(encrypted_check_string), check_string)
