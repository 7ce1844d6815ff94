"""HTTP agent transport (curl_cffi)

- 요청마다 AsyncSession을 만들면 TLS/커넥션 오버헤드가 커지므로
  transport 단위로 세션을 재사용합니다.
- HTTP 상태 코드를 TransportErrorClass로 변환해 재시도 분류에 넘깁니다.
- 종료 시 close()로 정리합니다.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional, TYPE_CHECKING

from curl_cffi import CurlError
from curl_cffi.requests import AsyncSession

from query_engine.core.config import Settings, settings as default_settings
from query_engine.core.exceptions import TransportError, TransportErrorClass
from query_engine.core.logging import logger, sanitize_for_log

from .base import AgentResponse

if TYPE_CHECKING:
    from query_engine.engine.request import QueryRequest


def classify_status(status: int) -> Optional[TransportErrorClass]:
    """HTTP 상태 코드 → 실패 분류 (성공이면 None)"""
    if status == 408:
        return TransportErrorClass.TIMEOUT
    if status == 429:
        return TransportErrorClass.RATE_LIMITED
    if status >= 500:
        return TransportErrorClass.SERVER_UNAVAILABLE
    if status in (401, 403):
        return TransportErrorClass.UNAUTHORIZED
    if status >= 400:
        return TransportErrorClass.MALFORMED_REQUEST
    return None


class HttpAgentTransport:
    """에이전트 /agents/trigger 엔드포인트 호출

    인증은 설정된 헤더를 그대로 전달할 뿐 관리하지 않습니다.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        session: Optional[Any] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        """
        Args:
            config: 설정 (기본값: 전역 settings)
            session: 주입할 세션 (테스트용, post/close 구현)
            timeout_s: 요청 타임아웃 (기본값: attempt_timeout_s)
        """
        self.config = config or default_settings
        self.timeout_s = timeout_s or self.config.attempt_timeout_s
        self._lock = asyncio.Lock()
        self._session = session

    @property
    def endpoint(self) -> str:
        return f"{self.config.agent_api_base_url.rstrip('/')}/agents/trigger"

    def default_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.config.agent_user_agent,
        }
        if self.config.project_id and self.config.agent_api_key:
            headers["Authorization"] = f"{self.config.project_id}:{self.config.agent_api_key}"
        return headers

    def build_payload(self, request: "QueryRequest") -> Dict[str, Any]:
        conversation_id = request.context.get("conversation_id") or self.config.conversation_id or None
        payload: Dict[str, Any] = {
            "agent_id": self.config.agent_id,
            "message": {"role": "user", "content": request.text},
        }
        if conversation_id:
            payload["conversation_id"] = conversation_id
        user_id = request.context.get("user_id")
        if user_id:
            payload["user_id"] = user_id
        return payload

    async def _ensure_session(self) -> Any:
        async with self._lock:
            if self._session is not None:
                return self._session
            self._session = AsyncSession(
                headers=self.default_headers(),
                allow_redirects=True,
                trust_env=False,
            )
            return self._session

    async def execute(self, request: "QueryRequest") -> AgentResponse:
        """요청 1회 실행

        Raises:
            TransportError: 상태 코드/네트워크/응답 형식 실패
        """
        sess = await self._ensure_session()
        logger.debug(
            f"[TRANSPORT] POST {self.endpoint}: request={request.request_id}, "
            f"query='{sanitize_for_log(request.text)}'"
        )
        try:
            resp = await sess.post(
                self.endpoint,
                json=self.build_payload(request),
                headers=self.default_headers(),
                timeout=self.timeout_s,
            )
        except CurlError as e:
            logger.info(f"[TRANSPORT] POST failed: {type(e).__name__}: {e!r}")
            raise TransportError(
                TransportErrorClass.SERVER_UNAVAILABLE,
                f"Network error: {e}",
            ) from e

        status = getattr(resp, "status_code", 0) or 0
        headers = getattr(resp, "headers", None) or {}
        remote_id = headers.get("x-request-id")

        error_class = classify_status(status)
        if error_class is not None:
            body = (getattr(resp, "text", "") or "")[:200]
            raise TransportError(
                error_class,
                f"[{status}] Agent request failed: {sanitize_for_log(body, max_length=200)}",
                status_code=status,
            )

        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise TransportError(
                TransportErrorClass.MALFORMED_REQUEST,
                "Invalid response format: expected JSON object",
                status_code=status,
            ) from e
        if not isinstance(data, dict):
            raise TransportError(
                TransportErrorClass.MALFORMED_REQUEST,
                "Invalid response format: expected JSON object",
                status_code=status,
            )

        return AgentResponse(query=request.text, data=data, status_code=status, request_id=remote_id)

    async def close(self) -> None:
        async with self._lock:
            if self._session is None:
                return
            try:
                await self._session.close()
            except Exception as e:
                logger.warning(f"[TRANSPORT] session close failed: {type(e).__name__}: {e}")
            self._session = None
