"""Page surfaces guarded by the session redirect gates in ``app.main``."""
from fastapi import APIRouter

router = APIRouter()


@router.get("/dashboard")
def dashboard():
    return {"surface": "dashboard"}


@router.get("/login")
def login():
    return {"surface": "login"}


@router.get("/signup")
def signup():
    return {"surface": "signup"}


@router.get("/verify-email")
def verify_email():
    return {"surface": "verify-email"}
