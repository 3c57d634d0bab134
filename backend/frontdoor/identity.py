"""Users and their registered authenticators.

This module owns the user record: verify endpoints read and create users here
rather than echoing back what the client sent.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import cbor2
from sqlalchemy import or_, update
from sqlalchemy.orm import Session
from fido2.cose import CoseKey
from fido2.utils import websafe_encode
from fido2.webauthn import AttestedCredentialData, PublicKeyCredentialDescriptor, Aaguid

from .models import User, Credential

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserInfo:
    id: int
    email: str
    name: str
    image: str | None

    def as_json(self) -> dict:
        return {"id": str(self.id), "email": self.email, "name": self.name, "image": self.image}


def user_handle_for(email: str) -> bytes:
    """Stable WebAuthn user handle; the email itself never leaves as the handle."""
    return hashlib.sha256(email.strip().lower().encode("utf-8")).digest()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == normalize_email(email)).one_or_none()


def get_or_create_user(db: Session, email: str, display_name: str | None = None) -> User:
    user = get_user(db, email)
    if user is None:
        email = normalize_email(email)
        user = User(email=email, display_name=display_name or email, user_handle=user_handle_for(email))
        db.add(user)
        db.flush()  # get user.id
        logger.info("Created user %s", user.id)
    return user


def credential_descriptors(db: Session, email: str | None) -> list[PublicKeyCredentialDescriptor]:
    """Known credentials of ``email``, for excludeCredentials/allowCredentials."""
    if not email:
        return []
    user = get_user(db, email)
    if user is None:
        return []
    return [PublicKeyCredentialDescriptor(type="public-key", id=c.credential_id) for c in user.credentials]


def add_credential(db: Session, user: User, credential_data, counter: int, transports: list[str] | None = None) -> Credential:
    """Persist the attested credential returned by a successful registration."""
    cred = Credential(
        user_id=user.id,
        credential_id=credential_data.credential_id,
        # COSE public key -> CBOR bytes for storage
        public_key=cbor2.dumps(dict(credential_data.public_key)),
        sign_count=counter,
        aaguid=str(credential_data.aaguid),
        transports=",".join(transports or []),
    )
    db.add(cred)
    db.flush()
    return cred


def find_credential(db: Session, credential_id: bytes) -> Credential | None:
    return db.query(Credential).filter(Credential.credential_id == credential_id).one_or_none()


def attested_from_db(cred: Credential) -> AttestedCredentialData:
    """Rebuild the AttestedCredentialData that fido2 verifies assertions against."""
    cose_key = CoseKey.parse(cbor2.loads(cred.public_key))
    aaguid = Aaguid.parse(cred.aaguid) if cred.aaguid else Aaguid.NONE
    return AttestedCredentialData.create(aaguid=aaguid, credential_id=cred.credential_id, public_key=cose_key)


def advance_counter(db: Session, cred_pk: int, new_count: int) -> bool:
    """Compare-and-swap the signature counter.

    The update only lands if the stored counter is still below ``new_count``
    (or both are zero, for authenticators without a counter). False means the
    assertion is a replay or comes from a cloned authenticator.
    """
    allowed = Credential.sign_count < new_count
    if new_count == 0:
        allowed = or_(allowed, Credential.sign_count == 0)
    result = db.execute(
        update(Credential)
        .where(Credential.id == cred_pk)
        .where(allowed)
        .values(sign_count=new_count, last_used_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def user_info(user: User) -> UserInfo:
    return UserInfo(id=user.id, email=user.email, name=user.display_name or user.email, image=user.image)


def credential_json(cred: Credential) -> dict:
    return {
        "id": websafe_encode(cred.credential_id),
        "publicKey": websafe_encode(cred.public_key),
        "counter": cred.sign_count,
    }
