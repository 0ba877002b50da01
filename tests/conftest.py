"""Shared key material and timeline builders for wcaf-kernel tests."""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa

from wcaf_kernel import EventType, MemoryStore, append_event


def private_key_pem(private_key) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


def public_key_pem(private_key) -> str:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


def build_timeline(document_id: str = "D1", count: int = 2) -> list:
    """Append ``count`` events to a fresh store and return the timeline."""
    store = MemoryStore()
    kinds = [EventType.VERIFY_RESULT, EventType.POLICY_DECISION, EventType.PAYMENT_ACTION, EventType.NOTE]
    for i in range(count):
        append_event(
            store,
            document_id,
            kinds[i % len(kinds)],
            {"seq": i, "verdict": "VALID"},
            {"system": "test", "instance_id": f"node-{i}"},
        )
    return store.get_by_document_id(document_id)


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ed25519_key():
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture(scope="session")
def rsa_private_pem(rsa_key) -> str:
    return private_key_pem(rsa_key)


@pytest.fixture(scope="session")
def rsa_public_pem(rsa_key) -> str:
    return public_key_pem(rsa_key)


@pytest.fixture(scope="session")
def other_rsa_public_pem(other_rsa_key) -> str:
    return public_key_pem(other_rsa_key)


@pytest.fixture(scope="session")
def ed25519_private_pem(ed25519_key) -> str:
    return private_key_pem(ed25519_key)


@pytest.fixture(scope="session")
def ed25519_public_pem(ed25519_key) -> str:
    return public_key_pem(ed25519_key)
