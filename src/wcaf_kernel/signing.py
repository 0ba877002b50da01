"""
Asymmetric signatures over canonical hashes for wcaf-kernel.

Attestations and bundle signatures both sign the lowercase hex SHA-256
digest (as UTF-8 bytes) of a canonical JSON document, never the document
itself. Supported algorithms:
- RSA-SHA256 (PKCS#1 v1.5), the default
- Ed25519

Key material may be PEM text/bytes, base64 DER, raw base64 Ed25519
public keys, or already-loaded ``cryptography`` key objects.
"""

import base64
import binascii

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, padding, rsa

RSA_SHA256 = "RSA-SHA256"
ED25519 = "Ed25519"
SUPPORTED_ALGORITHMS = (RSA_SHA256, ED25519)

KeyMaterial = str | bytes | rsa.RSAPrivateKey | ed25519.Ed25519PrivateKey
PublicKeyMaterial = str | bytes | rsa.RSAPublicKey | ed25519.Ed25519PublicKey


def normalize_algorithm(name: str | None) -> str:
    """
    Map an algorithm name to its wire spelling.

    Anything mentioning ed25519 (any case) is Ed25519; everything else,
    including None, is RSA-SHA256.
    """
    if isinstance(name, str) and "ed25519" in name.lower():
        return ED25519
    return RSA_SHA256


def algorithm_for_key(private_key) -> str:
    """Wire algorithm name matching a loaded private key."""
    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        return ED25519
    if isinstance(private_key, rsa.RSAPrivateKey):
        return RSA_SHA256
    raise ValueError(f"unsupported private key type: {type(private_key).__name__}")


def _as_bytes(key_value: str | bytes) -> bytes:
    if isinstance(key_value, bytes):
        return key_value.strip()
    return (key_value or "").strip().encode("utf-8")


def load_private_key(key_value: KeyMaterial):
    """Load an RSA or Ed25519 private key from PEM (or pass a key object through)."""
    if isinstance(key_value, (rsa.RSAPrivateKey, ed25519.Ed25519PrivateKey)):
        return key_value

    key_bytes = _as_bytes(key_value)
    if not key_bytes:
        raise ValueError("empty private key")
    try:
        key_obj = serialization.load_pem_private_key(key_bytes, password=None)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"invalid PEM private key ({exc})") from exc

    algorithm_for_key(key_obj)
    return key_obj


def load_public_key(key_value: PublicKeyMaterial, algorithm: str):
    """Load a public key from PEM text or base64/DER bytes for a specific algorithm."""
    if isinstance(key_value, (rsa.RSAPublicKey, ed25519.Ed25519PublicKey)):
        key_obj = key_value
    else:
        key_bytes = _as_bytes(key_value)
        if not key_bytes:
            raise ValueError("empty public key")

        if b"BEGIN" in key_bytes:
            try:
                key_obj = serialization.load_pem_public_key(key_bytes)
            except (ValueError, TypeError) as exc:
                raise ValueError(f"invalid PEM public key ({exc})") from exc
        else:
            try:
                decoded = base64.b64decode(key_bytes, validate=True)
            except binascii.Error as exc:
                raise ValueError("public key must be PEM or base64") from exc

            # Ed25519 commonly uses raw 32-byte public key encoding.
            if algorithm == ED25519 and len(decoded) == 32:
                key_obj = ed25519.Ed25519PublicKey.from_public_bytes(decoded)
            else:
                try:
                    key_obj = serialization.load_der_public_key(decoded)
                except (ValueError, TypeError) as exc:
                    raise ValueError(f"invalid DER public key ({exc})") from exc

    if algorithm == ED25519 and not isinstance(key_obj, ed25519.Ed25519PublicKey):
        raise ValueError("expected Ed25519 public key")
    if algorithm == RSA_SHA256 and not isinstance(key_obj, rsa.RSAPublicKey):
        raise ValueError("expected RSA public key")
    return key_obj


def sign_digest(digest_hex: str, private_key: KeyMaterial, algorithm: str) -> str:
    """
    Sign a hex digest and return the base64 signature.

    Raises:
        ValueError: If the key cannot be loaded or does not fit ``algorithm``
    """
    key_obj = load_private_key(private_key)
    if algorithm_for_key(key_obj) != algorithm:
        raise ValueError(f"{algorithm} requires a matching private key")

    message = digest_hex.encode("utf-8")
    if algorithm == ED25519:
        signature = key_obj.sign(message)
    else:
        signature = key_obj.sign(message, padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("ascii")


def verify_digest(
    digest_hex: str,
    signature_b64: str,
    public_key: PublicKeyMaterial,
    algorithm: str,
) -> bool:
    """
    Check a base64 signature over a hex digest.

    A predicate: malformed keys, malformed base64 and wrong key types
    all yield False instead of raising.
    """
    if algorithm not in SUPPORTED_ALGORITHMS:
        return False
    if not isinstance(signature_b64, str) or not isinstance(digest_hex, str):
        return False

    try:
        key_obj = load_public_key(public_key, algorithm)
        signature = base64.b64decode(signature_b64, validate=True)
    except (ValueError, TypeError, binascii.Error):
        return False

    message = digest_hex.encode("utf-8")
    try:
        if algorithm == ED25519:
            key_obj.verify(signature, message)
        else:
            key_obj.verify(signature, message, padding.PKCS1v15(), hashes.SHA256())
    except (InvalidSignature, ValueError):
        return False
    return True
