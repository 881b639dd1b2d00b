"""Unit tests for the bearer-token auth dependency."""

import pytest
from fastapi import HTTPException

from backend.itinerary_engine.api.auth import DEV_USER_ID, get_current_context


@pytest.mark.asyncio
async def test_get_current_context_no_header_uses_dev_user() -> None:
    ctx = await get_current_context(authorization=None)

    assert ctx.user_id == DEV_USER_ID


@pytest.mark.asyncio
async def test_get_current_context_valid_token() -> None:
    ctx = await get_current_context(authorization="Bearer user-42")

    assert ctx.user_id == "user-42"


@pytest.mark.asyncio
async def test_get_current_context_invalid_bearer_format() -> None:
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(authorization="Basic dXNlcjpwYXNz")

    assert exc_info.value.status_code == 401
    assert "Invalid authorization header format" in exc_info.value.detail
    assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}


@pytest.mark.asyncio
@pytest.mark.parametrize("header", ["Bearer ", "Bearer    ", "Bearer two words"])
async def test_get_current_context_rejects_bad_tokens(header: str) -> None:
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(authorization=header)

    assert exc_info.value.status_code == 401
    assert "expected user_id" in exc_info.value.detail
