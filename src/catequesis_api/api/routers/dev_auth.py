from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from catequesis_api.api.deps import settings_dep
from catequesis_api.auth.jwt import JwtConfig, issue_token
from catequesis_api.settings import Settings

# Mounted only outside prod (see `api.app.create_app`). The subject still has to
# exist and be active in the directory for the token to pass the gating pipeline.
router = APIRouter(prefix="/v1/dev", tags=["dev"])


class DevTokenRequest(BaseModel):
    subject: str = Field(min_length=1, max_length=64)
    ttl_minutes: int = Field(default=60, ge=1, le=24 * 60)


class DevTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


@router.post("/token", response_model=DevTokenResponse)
async def mint_dev_token(
    body: DevTokenRequest,
    settings: Settings = Depends(settings_dep),
) -> DevTokenResponse:
    token = issue_token(
        cfg=JwtConfig.from_settings(settings),
        subject=body.subject,
        ttl=timedelta(minutes=body.ttl_minutes),
    )
    return DevTokenResponse(access_token=token)
