"""HttpAgentTransport 단위 테스트 (세션 주입, 외부 호출 없음)"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

import pytest
from curl_cffi import CurlError

from query_engine.core.config import Settings
from query_engine.core.exceptions import TransportError, TransportErrorClass
from query_engine.engine.request import QueryRequest
from query_engine.transport import HttpAgentTransport, classify_status
from tests.fixtures import AGENT_RESPONSES


@dataclass
class FakeHttpResponse:
    status_code: int
    text: str
    headers: dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    def __init__(self, response: Optional[FakeHttpResponse] = None, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.posts: list[dict[str, Any]] = []
        self.closed = False

    async def post(self, url, **kwargs):
        self.posts.append({"url": url, **kwargs})
        if self.error:
            raise self.error
        return self.response

    async def close(self):
        self.closed = True


@pytest.fixture
def agent_settings() -> Settings:
    return Settings(
        _env_file=None,
        agent_api_base_url="https://agent.example.com/",
        agent_api_key="secret-key",
        agent_id="agent-1",
        project_id="proj-1",
        conversation_id="conv-default",
    )


def make_request(text: str = "sales report", context=None) -> QueryRequest:
    return QueryRequest.batch(text, f"fp:{text}", context=context)


class TestClassifyStatus:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (200, None),
            (204, None),
            (408, TransportErrorClass.TIMEOUT),
            (429, TransportErrorClass.RATE_LIMITED),
            (500, TransportErrorClass.SERVER_UNAVAILABLE),
            (503, TransportErrorClass.SERVER_UNAVAILABLE),
            (401, TransportErrorClass.UNAUTHORIZED),
            (403, TransportErrorClass.UNAUTHORIZED),
            (400, TransportErrorClass.MALFORMED_REQUEST),
            (404, TransportErrorClass.MALFORMED_REQUEST),
        ],
    )
    def test_mapping(self, status, expected):
        assert classify_status(status) == expected


class TestHttpAgentTransport:
    @pytest.mark.asyncio
    async def test_success_posts_trigger_payload(self, agent_settings):
        session = FakeSession(
            FakeHttpResponse(200, json.dumps(AGENT_RESPONSES["plain"]), {"x-request-id": "remote-1"})
        )
        transport = HttpAgentTransport(agent_settings, session=session)

        response = await transport.execute(make_request())

        assert response.data == AGENT_RESPONSES["plain"]
        assert response.query == "sales report"
        assert response.request_id == "remote-1"
        post = session.posts[0]
        assert post["url"] == "https://agent.example.com/agents/trigger"
        assert post["json"] == {
            "agent_id": "agent-1",
            "message": {"role": "user", "content": "sales report"},
            "conversation_id": "conv-default",
        }
        assert post["headers"]["Authorization"] == "proj-1:secret-key"

    @pytest.mark.asyncio
    async def test_context_conversation_overrides_default(self, agent_settings):
        session = FakeSession(FakeHttpResponse(200, "{}"))
        transport = HttpAgentTransport(agent_settings, session=session)

        await transport.execute(make_request(context={"conversation_id": "conv-9", "user_id": "u-1"}))

        payload = session.posts[0]["json"]
        assert payload["conversation_id"] == "conv-9"
        assert payload["user_id"] == "u-1"

    @pytest.mark.asyncio
    async def test_http_error_status_raises_classified(self, agent_settings):
        session = FakeSession(FakeHttpResponse(429, "slow down"))
        transport = HttpAgentTransport(agent_settings, session=session)

        with pytest.raises(TransportError) as exc_info:
            await transport.execute(make_request())

        assert exc_info.value.error_class == TransportErrorClass.RATE_LIMITED
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_network_error_is_server_unavailable(self, agent_settings):
        session = FakeSession(error=CurlError("connection refused"))
        transport = HttpAgentTransport(agent_settings, session=session)

        with pytest.raises(TransportError) as exc_info:
            await transport.execute(make_request())

        assert exc_info.value.error_class == TransportErrorClass.SERVER_UNAVAILABLE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["not json", "[1, 2]", ""])
    async def test_non_object_body_is_malformed(self, agent_settings, body):
        session = FakeSession(FakeHttpResponse(200, body))
        transport = HttpAgentTransport(agent_settings, session=session)

        with pytest.raises(TransportError) as exc_info:
            await transport.execute(make_request())

        assert exc_info.value.error_class == TransportErrorClass.MALFORMED_REQUEST

    @pytest.mark.asyncio
    async def test_body_decoded_by_response_json(self, agent_settings):
        class DecodedResponse(FakeHttpResponse):
            def json(self) -> Any:
                return {"answer": "decoded"}

        session = FakeSession(DecodedResponse(200, ""))
        transport = HttpAgentTransport(agent_settings, session=session)

        response = await transport.execute(make_request())

        assert response.data == {"answer": "decoded"}

    @pytest.mark.asyncio
    async def test_close_releases_session(self, agent_settings):
        session = FakeSession(FakeHttpResponse(200, "{}"))
        transport = HttpAgentTransport(agent_settings, session=session)

        await transport.close()
        await transport.close()

        assert session.closed is True

    def test_no_authorization_without_credentials(self):
        transport = HttpAgentTransport(Settings(_env_file=None, agent_api_key="", project_id=""))
        assert "Authorization" not in transport.default_headers()
