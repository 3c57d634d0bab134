from fastapi import APIRouter, Body, Depends

from ..ceremony import WebAuthnCeremonies, get_ceremonies
from ..challenge_store import ChallengeStore, get_challenge_store
from ..errors import error_boundary

router = APIRouter(prefix="/api/webauthn", tags=["webauthn"])

CHALLENGE_FAILED = "Failed to generate challenge"
VERIFY_FAILED = "Verification failed"

# ---------- Registration ----------
@router.post("/register/challenge")
def register_challenge(
    payload: dict | None = Body(None),
    store: ChallengeStore = Depends(get_challenge_store),
    ceremonies: WebAuthnCeremonies = Depends(get_ceremonies),
):
    payload = payload or {}
    with error_boundary(CHALLENGE_FAILED):
        return ceremonies.begin_registration(store, payload.get("email"), payload.get("displayName"))

@router.post("/register/verify")
def register_verify(
    payload: dict | None = Body(None),
    store: ChallengeStore = Depends(get_challenge_store),
    ceremonies: WebAuthnCeremonies = Depends(get_ceremonies),
):
    payload = payload or {}
    with error_boundary(VERIFY_FAILED):
        return ceremonies.complete_registration(
            store, payload.get("email"), payload.get("credential"), payload.get("challenge")
        )

# ---------- Authentication ----------
@router.post("/authenticate/challenge")
def authenticate_challenge(
    payload: dict | None = Body(None),
    store: ChallengeStore = Depends(get_challenge_store),
    ceremonies: WebAuthnCeremonies = Depends(get_ceremonies),
):
    payload = payload or {}
    with error_boundary(CHALLENGE_FAILED):
        return ceremonies.begin_authentication(store, payload.get("email"))

@router.post("/authenticate/verify")
def authenticate_verify(
    payload: dict | None = Body(None),
    store: ChallengeStore = Depends(get_challenge_store),
    ceremonies: WebAuthnCeremonies = Depends(get_ceremonies),
):
    payload = payload or {}
    with error_boundary(VERIFY_FAILED):
        return ceremonies.complete_authentication(
            store, payload.get("credential"), payload.get("challenge"), email=payload.get("email")
        )
