"""Pairing verification API, called by the bot on the verifying channel."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from wemp.pairing import PairingRegistry

router = APIRouter()


# ── schemas ──────────────────────────────────────────────────────────────


class VerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    user_id: str = Field(alias="userId")
    user_name: str | None = Field(default=None, alias="userName")
    channel: str | None = None


class VerifyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(serialization_alias="accountId")
    open_id: str = Field(serialization_alias="openId")


# ── deps ─────────────────────────────────────────────────────────────────


def get_registry(request: Request) -> PairingRegistry:
    return request.app.state.pairing


RegistryDep = Annotated[PairingRegistry, Depends(get_registry)]


def _bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# ── routes ───────────────────────────────────────────────────────────────


@router.post("/verify", response_model=VerifyResponse, response_model_by_alias=True)
async def verify_code(
    body: VerifyRequest,
    registry: RegistryDep,
    authorization: Annotated[str | None, Header()] = None,
) -> VerifyResponse:
    token = _bearer(authorization)
    # callers holding no valid token learn nothing about the code
    if not registry.tokens.any_configured():
        raise HTTPException(status_code=403, detail="pairing API disabled")
    if not registry.tokens.matches_any(token):
        logger.warning("Pairing verify rejected: bad token")
        raise HTTPException(status_code=401, detail="invalid pairing API token")

    found = registry.lookup_code(body.code.strip())
    if not found.ok:
        raise HTTPException(status_code=404, detail=str(found.error))
    owner = found.unwrap()

    if not registry.get_pairing_api_token(owner.account_id):
        raise HTTPException(status_code=403, detail="pairing API disabled for this account")

    if not registry.tokens.check(owner.account_id, token):
        logger.warning(f"[wemp:{owner.account_id}] Pairing verify rejected: bad token")
        raise HTTPException(status_code=401, detail="invalid pairing API token")

    paired = registry.verify_pairing_code(body.code.strip(), body.user_id, body.user_name, body.channel)
    if paired is None:
        # expired between lookup and consume
        raise HTTPException(status_code=404, detail="pairing code not found or expired")
    return VerifyResponse(account_id=paired.account_id, open_id=paired.open_id)
