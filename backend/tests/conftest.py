"""
Pytest fixtures for the frontdoor backend.

Settings are read from the environment at import time, so the test database
and secrets are set up here before anything from ``frontdoor`` is imported.
"""

import hashlib
import json
import os
import struct
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="frontdoor-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret-key"
os.environ["WEBAUTHN_RP_ID"] = "localhost"
os.environ["WEBAUTHN_ORIGIN"] = "http://localhost:3000"
os.environ["CHALLENGE_TTL_SECONDS"] = "300"

import cbor2
import fakeredis
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient
from fido2.utils import websafe_encode

from frontdoor.main import app
from frontdoor.db import Base, engine
from frontdoor.challenge_store import ChallengeStore, get_challenge_store

RP_ID = "localhost"
ORIGIN = "http://localhost:3000"

FLAG_UP = 0x01
FLAG_UV = 0x04
FLAG_AT = 0x40


class SoftAuthenticator:
    """A software platform authenticator with one P-256 credential.

    Produces the same JSON the browser hands the front-end after
    navigator.credentials.create()/get(), so the server runs the real fido2
    checks against it. Every knob a test needs to forge a bad response
    (challenge, origin, RP ID, counter) can be overridden per call.
    """

    def __init__(self, rp_id=RP_ID, origin=ORIGIN):
        self.rp_id = rp_id
        self.origin = origin
        self.private_key = ec.generate_private_key(ec.SECP256R1())
        self.credential_id = os.urandom(32)
        self.counter = 0
        self.user_handle = None

    @property
    def credential_id_b64(self) -> str:
        return websafe_encode(self.credential_id)

    def _cose_key(self) -> dict:
        numbers = self.private_key.public_key().public_numbers()
        return {
            1: 2,  # kty: EC2
            3: -7,  # alg: ES256
            -1: 1,  # crv: P-256
            -2: numbers.x.to_bytes(32, "big"),
            -3: numbers.y.to_bytes(32, "big"),
        }

    def _client_data(self, type_, challenge, origin) -> bytes:
        return json.dumps({
            "type": type_,
            "challenge": challenge,
            "origin": origin or self.origin,
            "crossOrigin": False,
        }).encode()

    def _auth_data(self, flags, rp_id=None, attested=b"") -> bytes:
        rp_id_hash = hashlib.sha256((rp_id or self.rp_id).encode()).digest()
        return rp_id_hash + bytes([flags]) + struct.pack(">I", self.counter) + attested

    def create(self, options, challenge=None, origin=None, rp_id=None) -> dict:
        self.user_handle = options["user"]["id"]
        client_data = self._client_data("webauthn.create", challenge or options["challenge"], origin)
        attested = (
            bytes(16)  # AAGUID of a "none" attestation
            + struct.pack(">H", len(self.credential_id))
            + self.credential_id
            + cbor2.dumps(self._cose_key())
        )
        auth_data = self._auth_data(FLAG_UP | FLAG_UV | FLAG_AT, rp_id, attested)
        attestation_object = cbor2.dumps({"fmt": "none", "attStmt": {}, "authData": auth_data})
        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "type": "public-key",
            "response": {
                "clientDataJSON": websafe_encode(client_data),
                "attestationObject": websafe_encode(attestation_object),
                "transports": ["internal"],
            },
            "clientExtensionResults": {},
            "authenticatorAttachment": "platform",
        }

    def get(self, options, challenge=None, origin=None, counter=None) -> dict:
        self.counter = self.counter + 1 if counter is None else counter
        client_data = self._client_data("webauthn.get", challenge or options["challenge"], origin)
        auth_data = self._auth_data(FLAG_UP | FLAG_UV)
        signature = self.private_key.sign(
            auth_data + hashlib.sha256(client_data).digest(), ec.ECDSA(hashes.SHA256())
        )
        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "type": "public-key",
            "response": {
                "clientDataJSON": websafe_encode(client_data),
                "authenticatorData": websafe_encode(auth_data),
                "signature": websafe_encode(signature),
                "userHandle": self.user_handle,
            },
            "clientExtensionResults": {},
            "authenticatorAttachment": "platform",
        }


@pytest.fixture(autouse=True)
def database():
    """Fresh tables for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis()


@pytest.fixture
def challenge_store(redis_client):
    return ChallengeStore(redis_client, ttl_seconds=300)


@pytest.fixture
def client(challenge_store):
    app.dependency_overrides[get_challenge_store] = lambda: challenge_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def authenticator():
    return SoftAuthenticator()


@pytest.fixture
def register_passkey(client):
    def _register(authenticator, email="a@x.com"):
        """Run a full registration ceremony and return the verify response."""
        issued = client.post("/api/webauthn/register/challenge", json={"email": email}).json()
        credential = authenticator.create(issued["options"])
        return client.post("/api/webauthn/register/verify", json={
            "email": email,
            "credential": credential,
            "challenge": issued["challenge"],
        })
    return _register


@pytest.fixture
def registered(register_passkey, authenticator):
    resp = register_passkey(authenticator)
    assert resp.status_code == 200, resp.text
    return resp.json()


@pytest.fixture
def make_authenticator():
    return SoftAuthenticator


@pytest.fixture
def anyio_backend():
    return "asyncio"
