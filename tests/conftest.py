"""전역 테스트 설정

역할:
- 테스트 환경 구성
- 공통 Fake transport/detector 주입
- 백오프 대기 기록 (실제 sleep 없음)

금지:
- 실제 에이전트 API 호출
- 응답 payload 대량 데이터 (tests/fixtures 사용)
"""

from __future__ import annotations

import asyncio
import copy
import os
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import pytest


# 프로젝트 루트를 경로에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ.setdefault("ENVIRONMENT", "test")

from query_engine.engine import EngineConfig, QueryEngine  # noqa: E402
from query_engine.transport.base import AgentResponse  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def test_env() -> None:
    """테스트 환경 변수 설정 (세션 전역)"""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["LOG_LEVEL"] = "INFO"


class FakeTransport:
    """엔진 Unit 테스트용 가짜 transport

    - responses: 쿼리 텍스트 → 응답 payload (없으면 기본 응답)
    - failures: 쿼리 텍스트 → 순서대로 던질 예외 목록 (소진 후 성공)
    - always_fail: 쿼리 텍스트 → 매번 던질 예외
    - gates: 쿼리 텍스트 → 열릴 때까지 대기할 Event
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.responses: dict[str, dict[str, Any]] = {}
        self.failures: dict[str, list[Exception]] = {}
        self.always_fail: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    def calls_for(self, text: str) -> int:
        return self.calls.count(text)

    async def execute(self, request) -> AgentResponse:
        self.calls.append(request.text)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get(request.text)
            if gate is not None:
                await gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)

            if request.text in self.always_fail:
                raise self.always_fail[request.text]
            pending = self.failures.get(request.text)
            if pending:
                raise pending.pop(0)

            payload = self.responses.get(request.text, {"answer": f"result for {request.text}"})
            return AgentResponse(query=request.text, data=copy.deepcopy(payload))
        finally:
            self.active -= 1

    async def close(self) -> None:
        self.closed = True


class FakeDetector:
    """쿼리 텍스트 → 후속 쿼리 목록을 그대로 돌려주는 detector"""

    def __init__(self, follow_ups: Optional[dict[str, list[str]]] = None):
        self.follow_ups = follow_ups or {}
        self.analyzed: list[str] = []

    def analyze(self, response: AgentResponse) -> list[str]:
        self.analyzed.append(response.query)
        return list(self.follow_ups.get(response.query, []))


class SleepRecorder:
    """asyncio.sleep 대체 - 요청된 대기 시간만 기록"""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake_detector() -> FakeDetector:
    return FakeDetector()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_engine(fake_transport, fake_detector, sleep_recorder) -> Callable[..., QueryEngine]:
    """QueryEngine 팩토리 (기본: Fake transport/detector, 지터 없음)"""

    def _make(transport=None, detector=None, **overrides) -> QueryEngine:
        options = {"retry_jitter_max_s": 0.0}
        options.update(overrides)
        return QueryEngine(
            transport or fake_transport,
            detector=detector or fake_detector,
            config=EngineConfig(**options),
            sleep=sleep_recorder,
        )

    return _make
