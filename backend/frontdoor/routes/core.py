from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from ..challenge_store import ChallengeStore, get_challenge_store
from ..config import settings
from ..db import db_ping

router = APIRouter(tags=["core"])

# The front-end lands on the journey page; it handles sign-in from there
@router.get("/", include_in_schema=False)
def root():
    return RedirectResponse(settings.LANDING_PATH)

@router.get("/healthz")
def healthz(store: ChallengeStore = Depends(get_challenge_store)):
    return {
        "status": "ok",
        "db": "up" if db_ping() else "down",
        "redis": "up" if store.ping() else "down",
    }

# Gateway proxy compat: /api/healthz → /healthz
@router.get("/api/healthz")
def healthz_alias(store: ChallengeStore = Depends(get_challenge_store)):
    return healthz(store)
