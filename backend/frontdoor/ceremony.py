"""WebAuthn registration and authentication ceremonies.

Both ceremonies have the same shape: ``begin_*`` issues a fresh challenge and
parks the server-side state in the challenge store, ``complete_*`` takes that
state back out (once) and lets fido2 check the client response against it.
Cryptographic checks (challenge, origin, RP ID hash, signature) are fido2's;
this module decides what to trust around them.
"""

import logging
import struct
from collections.abc import Mapping

from cryptography.exceptions import InvalidSignature
from fido2.server import Fido2Server
from fido2.utils import websafe_encode, websafe_decode
from fido2.webauthn import (
    PublicKeyCredentialRpEntity,
    PublicKeyCredentialUserEntity,
    AttestationConveyancePreference,
    UserVerificationRequirement,
    ResidentKeyRequirement,
    AuthenticatorAttachment,
    AuthenticatorData,
)
from sqlalchemy.exc import IntegrityError

from .challenge_store import Ceremony, ChallengeStore
from .config import settings
from .db import session_scope
from .errors import ValidationError, MalformedInput, VerificationFailed
from .security import issue_token
from . import identity

logger = logging.getLogger(__name__)

REGISTRATION_FAILED = "Registration verification failed"
AUTHENTICATION_FAILED = "Authentication verification failed"

# What fido2 raises when a response does not match the issued state
_REJECTIONS = (ValueError, KeyError, InvalidSignature)


def json_safe(value):
    """Recursively convert WebAuthn option values into JSON-friendly data."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return websafe_encode(bytes(value))
    if isinstance(value, Mapping):
        return {key: json_safe(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_safe(item) for item in value]
    return value


def _state_json(state: Mapping) -> dict:
    uv = state.get("user_verification")
    return {
        "challenge": state["challenge"],
        "user_verification": getattr(uv, "value", uv),
    }


def _b64_field(mapping, name: str, required: bool = True) -> bytes | None:
    value = mapping.get(name) if isinstance(mapping, Mapping) else None
    if value is None:
        if required:
            raise MalformedInput()
        return None
    try:
        return websafe_decode(value)
    except (ValueError, TypeError) as exc:
        raise MalformedInput() from exc


def _credential_id(credential: Mapping) -> bytes:
    if credential.get("type") != "public-key":
        raise MalformedInput()
    raw = credential.get("rawId") or credential.get("id")
    if not raw:
        raise MalformedInput()
    try:
        return websafe_decode(raw)
    except (ValueError, TypeError) as exc:
        raise MalformedInput() from exc


class WebAuthnCeremonies:
    """Challenge issuing and response verification for one relying party."""

    def __init__(self, rp_id: str, rp_name: str, origin: str):
        self.rp = PublicKeyCredentialRpEntity(id=rp_id, name=rp_name)
        self.origin = origin
        self.server = Fido2Server(
            self.rp,
            attestation=AttestationConveyancePreference.NONE,
            # The signed origin has to be exactly the deployment origin
            verify_origin=lambda o: o == self.origin,
        )

    # ---------- Registration ----------
    def begin_registration(self, store: ChallengeStore, email: str | None, display_name: str | None = None) -> dict:
        if not email or not isinstance(email, str) or not email.strip():
            raise ValidationError("Email is required")
        email = identity.normalize_email(email)
        display_name = display_name or email

        with session_scope() as db:
            existing = identity.credential_descriptors(db, email)

        user_entity = PublicKeyCredentialUserEntity(
            id=identity.user_handle_for(email), name=email, display_name=display_name
        )
        options, state = self.server.register_begin(
            user=user_entity,
            credentials=existing,  # becomes excludeCredentials in options
            resident_key_requirement=ResidentKeyRequirement.PREFERRED,
            user_verification=UserVerificationRequirement.PREFERRED,
            authenticator_attachment=AuthenticatorAttachment.PLATFORM,
        )

        public_key = json_safe(dict(options.public_key))
        public_key.setdefault("excludeCredentials", [])
        challenge = state["challenge"]
        store.put(Ceremony.REGISTER, challenge, {
            "state": _state_json(state),
            "email": email,
            "display_name": display_name,
        })
        logger.info("Issued registration challenge (%d known credentials excluded)", len(existing))
        return {"options": public_key, "challenge": challenge}

    def complete_registration(self, store: ChallengeStore, email, credential, challenge) -> dict:
        if not email or not credential or not challenge:
            raise ValidationError()
        if not isinstance(credential, Mapping) or not isinstance(email, str) or not isinstance(challenge, str):
            raise MalformedInput()
        email = identity.normalize_email(email)

        cred_id = _credential_id(credential)
        response = credential.get("response")
        _b64_field(response, "clientDataJSON")
        _b64_field(response, "attestationObject")

        saved = store.take_if_valid(Ceremony.REGISTER, challenge)
        if saved is None or saved.get("email") != email:
            logger.warning("Registration rejected: challenge unknown, used, expired or issued to someone else")
            raise VerificationFailed(REGISTRATION_FAILED)

        try:
            auth_data = self.server.register_complete(saved["state"], credential)
        except _REJECTIONS as exc:
            logger.warning("Registration rejected: %s", exc)
            raise VerificationFailed(REGISTRATION_FAILED) from exc

        transports = response.get("transports") or credential.get("transports") or []
        try:
            result = self._save_registration(email, saved.get("display_name"), auth_data, transports)
        except IntegrityError as exc:
            with session_scope() as db:
                duplicate = identity.find_credential(db, cred_id) is not None
            if duplicate:
                logger.warning("Registration rejected: credential id already registered")
                raise VerificationFailed(REGISTRATION_FAILED) from exc
            # Another first-time registration created the same user in between
            logger.info("User row for this email appeared concurrently, retrying once")
            try:
                result = self._save_registration(email, saved.get("display_name"), auth_data, transports)
            except IntegrityError as retry_exc:
                logger.warning("Registration rejected: could not store credential after retry")
                raise VerificationFailed(REGISTRATION_FAILED) from retry_exc

        logger.info("Registered credential for user %s", result["user"]["id"])
        return result

    @staticmethod
    def _save_registration(email: str, display_name: str | None, auth_data, transports) -> dict:
        with session_scope() as db:
            user = identity.get_or_create_user(db, email, display_name)
            cred = identity.add_credential(db, user, auth_data.credential_data, auth_data.counter, transports)
            return {
                "verified": True,
                "user": identity.user_info(user).as_json(),
                "credential": identity.credential_json(cred),
            }

    # ---------- Authentication ----------
    def begin_authentication(self, store: ChallengeStore, email: str | None = None) -> dict:
        # The email only narrows allowCredentials; without it the authenticator
        # picks a discoverable credential itself.
        email = identity.normalize_email(email) if isinstance(email, str) and email.strip() else None

        with session_scope() as db:
            allowed = identity.credential_descriptors(db, email)

        options, state = self.server.authenticate_begin(
            credentials=allowed,
            user_verification=UserVerificationRequirement.PREFERRED,
        )

        public_key = json_safe(dict(options.public_key))
        public_key.setdefault("allowCredentials", [])
        challenge = state["challenge"]
        store.put(Ceremony.AUTHENTICATE, challenge, {"state": _state_json(state), "email": email})
        logger.info("Issued authentication challenge (%d allowed credentials)", len(allowed))
        return {"options": public_key, "challenge": challenge}

    def complete_authentication(self, store: ChallengeStore, credential, challenge, email=None) -> dict:
        if not credential or not challenge:
            raise ValidationError()
        if not isinstance(credential, Mapping) or not isinstance(challenge, str):
            raise MalformedInput()

        cred_id = _credential_id(credential)
        response = credential.get("response")
        _b64_field(response, "clientDataJSON")
        _b64_field(response, "signature")
        try:
            auth_data = AuthenticatorData(_b64_field(response, "authenticatorData"))
        except (ValueError, IndexError, struct.error) as exc:
            raise MalformedInput() from exc
        user_handle = _b64_field(response, "userHandle", required=False)

        saved = store.take_if_valid(Ceremony.AUTHENTICATE, challenge)
        if saved is None:
            logger.warning("Authentication rejected: challenge unknown, used or expired")
            raise VerificationFailed(AUTHENTICATION_FAILED)

        claimed_emails = {identity.normalize_email(e) for e in (email, saved.get("email")) if isinstance(e, str) and e}

        with session_scope() as db:
            cred = identity.find_credential(db, cred_id)
            if cred is None:
                logger.warning("Authentication rejected: unknown credential")
                raise VerificationFailed(AUTHENTICATION_FAILED)
            user = cred.user
            if any(e != user.email for e in claimed_emails) or (user_handle and user_handle != user.user_handle):
                logger.warning("Authentication rejected: credential does not belong to the claimed user")
                raise VerificationFailed(AUTHENTICATION_FAILED)

            try:
                self.server.authenticate_complete(saved["state"], [identity.attested_from_db(cred)], credential)
            except _REJECTIONS as exc:
                logger.warning("Authentication rejected: %s", exc)
                raise VerificationFailed(AUTHENTICATION_FAILED) from exc

            if not identity.advance_counter(db, cred.id, auth_data.counter):
                logger.warning(
                    "Authentication rejected: counter for credential %s did not advance past %d (got %d)",
                    cred.id, cred.sign_count, auth_data.counter,
                )
                raise VerificationFailed(AUTHENTICATION_FAILED)

            info = identity.user_info(user)

        logger.info("Authenticated user %s", info.id)
        return {"verified": True, "user": info.as_json(), "token": issue_token(sub=info.email)}


ceremonies = WebAuthnCeremonies(
    rp_id=settings.WEBAUTHN_RP_ID,
    rp_name=settings.WEBAUTHN_RP_NAME,
    origin=settings.WEBAUTHN_ORIGIN,
)

def get_ceremonies() -> WebAuthnCeremonies:
    return ceremonies
