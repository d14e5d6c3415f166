# src/securevault/server/routers/auth.py
from typing import Any, Optional

from fastapi import APIRouter, status
from pydantic import BaseModel

from ..deps import IdentityDep, ServicesDep

router = APIRouter()


# --- request / response bodies ---

class Credentials(BaseModel):
    # left loose on purpose: the credential store validates and reports 400/401
    username: Optional[Any] = None
    password: Optional[Any] = None


class OkResponse(BaseModel):
    ok: bool = True


class LoginResponse(BaseModel):
    token: str
    username: str


class MeResponse(BaseModel):
    username: str


# --- endpoints ---

@router.post("/register", response_model=OkResponse, status_code=status.HTTP_201_CREATED)
def register(body: Credentials, services: ServicesDep):
    services.credentials.register(body.username, body.password)
    return OkResponse()


@router.post("/login", response_model=LoginResponse)
def login(body: Credentials, services: ServicesDep):
    identity = services.credentials.verify(body.username, body.password)
    token = services.sessions.issue(identity)
    return LoginResponse(token=token, username=identity.username)


@router.get("/me", response_model=MeResponse)
def read_me(identity: IdentityDep):
    return MeResponse(username=identity.username)
