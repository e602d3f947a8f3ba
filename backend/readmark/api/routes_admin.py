"""Account, API key and operational routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from readmark.api.dependencies import get_repository, require_scope
from readmark.core.metrics import metrics_response
from readmark.db.repository import HighlightRepository
from readmark.models.dto import (
    ApiKeyCreateRequest,
    ApiKeyCreatedResponse,
    ApiKeyResponse,
    DeleteResponse,
    RegisterRequest,
    RegisterResponse,
    UserResponse,
)
from readmark.models.entities import ApiKey
from readmark.security.api_keys import ALL_SCOPES, issue_api_key

router = APIRouter()


@router.post("/auth/register", response_model=RegisterResponse, status_code=201, summary="Create an account")
async def register(
    request: RegisterRequest,
    repository: HighlightRepository = Depends(get_repository),
) -> RegisterResponse:
    user = repository.create_user(email=request.email, name=request.name)
    raw_key, record = issue_api_key(repository, user.id, name="default", scopes=ALL_SCOPES)
    return RegisterResponse(
        user=UserResponse.model_validate(user),
        key=raw_key,
        api_key=ApiKeyResponse.model_validate(record),
    )


@router.get("/keys", response_model=list[ApiKeyResponse], summary="List API keys")
async def list_keys(
    api_key: ApiKey = Depends(require_scope("read")),
    repository: HighlightRepository = Depends(get_repository),
) -> list[ApiKeyResponse]:
    return [ApiKeyResponse.model_validate(key) for key in repository.list_api_keys(api_key.user_id)]


@router.post("/keys", response_model=ApiKeyCreatedResponse, status_code=201, summary="Create an API key")
async def create_key(
    request: ApiKeyCreateRequest,
    api_key: ApiKey = Depends(require_scope("write")),
    repository: HighlightRepository = Depends(get_repository),
) -> ApiKeyCreatedResponse:
    raw_key, record = issue_api_key(
        repository,
        api_key.user_id,
        name=request.name,
        scopes=request.scopes,
        expires_in_days=request.expires_in_days,
    )
    return ApiKeyCreatedResponse(
        message="API key created. Save this key, it will not be shown again.",
        key=raw_key,
        data=ApiKeyResponse.model_validate(record),
    )


@router.delete("/keys/{key_id}", response_model=DeleteResponse, summary="Revoke an API key")
async def delete_key(
    key_id: str,
    api_key: ApiKey = Depends(require_scope("delete")),
    repository: HighlightRepository = Depends(get_repository),
) -> DeleteResponse:
    if not repository.delete_api_key(api_key.user_id, key_id):
        raise HTTPException(status_code=404, detail="API key not found")
    return DeleteResponse(status="ok", deleted=1)


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
