from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey


def sign_ed25519(seed: bytes, message: bytes) -> tuple[bytes, bytes]:
    """Sign ``message`` with the key derived from a 32-byte seed.

    Returns (signature, public_key).
    """
    sk = SigningKey(seed)
    return sk.sign(message).signature, bytes(sk.verify_key)


def public_key_ed25519(seed: bytes) -> bytes:
    return bytes(SigningKey(seed).verify_key)


def verify_ed25519(public_key_bytes: bytes, message: bytes, signature: bytes) -> bool:
    try:
        vk = VerifyKey(public_key_bytes)
    except ValueError:
        # Wrong-length key material can never verify.
        return False
    try:
        vk.verify(message, signature)
        return True
    except (BadSignatureError, ValueError):
        return False
