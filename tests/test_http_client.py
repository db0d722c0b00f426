"""Tests for the async HTTP client."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from shared.http_client import AsyncHTTPClient


def mock_session_for(method: str, payload: Any) -> AsyncMock:
    mock_session = AsyncMock()
    mock_response = AsyncMock()
    mock_response.json.return_value = payload
    mock_response.raise_for_status.return_value = None
    getattr(mock_session, method).return_value.__aenter__.return_value = mock_response
    return mock_session


class TestAsyncHTTPClient:
    @pytest.mark.asyncio
    async def test_context_manager_opens_and_closes_session(self) -> None:
        with patch("aiohttp.ClientSession") as mock_session_class:
            mock_session_class.return_value = AsyncMock()
            async with AsyncHTTPClient(timeout=5, base_headers={"X-Client": "queue"}) as client:
                assert client.session is not None
            assert client.session is None
            mock_session_class.return_value.close.assert_awaited_once()
            assert mock_session_class.call_args.kwargs["headers"] == {"X-Client": "queue"}

    @pytest.mark.asyncio
    async def test_post_sends_json_body(self) -> None:
        with patch("aiohttp.ClientSession") as mock_session_class:
            mock_session = mock_session_for("post", {"description": "A cat"})
            mock_session_class.return_value = mock_session

            async with AsyncHTTPClient() as client:
                result = await client.post("https://api.example.com/process", data={"fileId": 1})

            assert result == {"description": "A cat"}
            mock_session.post.assert_called_once_with(
                "https://api.example.com/process", json={"fileId": 1}, headers=None
            )

    @pytest.mark.asyncio
    async def test_not_initialized_error(self) -> None:
        client = AsyncHTTPClient()
        with pytest.raises(RuntimeError, match="HTTP client not initialized"):
            await client.post("https://api.example.com/process", data={})

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        with patch("aiohttp.ClientSession") as mock_session_class:
            mock_session = mock_session_for("post", {})
            response = mock_session.post.return_value.__aenter__.return_value
            response.raise_for_status.side_effect = aiohttp.ClientResponseError(
                request_info=MagicMock(), history=(), status=502
            )
            mock_session_class.return_value = mock_session

            async with AsyncHTTPClient() as client:
                with pytest.raises(aiohttp.ClientResponseError):
                    await client.post("https://api.example.com/process", data={"fileId": 2})
