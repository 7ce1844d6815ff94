"""커스텀 예외 정의 (Structured Exception Hierarchy)

엔진 경계 밖으로는 던지지 않습니다. 실패는 모두 ExecutionResult에
`error`로 실려서 호출자에게 전달됩니다.
"""
from enum import Enum
from typing import Any, Optional


class QueryEngineException(Exception):
    """기본 예외 클래스 - 모든 커스텀 예외의 부모"""
    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR", details: Optional[dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# ============================================================================
# Transport
# ============================================================================

class TransportErrorClass(str, Enum):
    """transport가 보고하는 실패 분류 (HTTP 408/429/5xx/4xx 대응)"""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    SERVER_UNAVAILABLE = "server_unavailable"
    MALFORMED_REQUEST = "malformed_request"
    UNAUTHORIZED = "unauthorized"


DEFAULT_RETRYABLE_CLASSES = frozenset({
    TransportErrorClass.TIMEOUT,
    TransportErrorClass.RATE_LIMITED,
    TransportErrorClass.SERVER_UNAVAILABLE,
})


class TransportError(QueryEngineException):
    """에이전트 호출 실패

    Attributes:
        error_class: 실패 분류
        status_code: HTTP 상태 코드 (있으면)
    """
    def __init__(
        self,
        error_class: TransportErrorClass,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.error_class = TransportErrorClass(error_class)
        self.status_code = status_code
        error_code = f"TRANSPORT_{self.error_class.value.upper()}"
        super().__init__(
            message,
            error_code,
            details or {"error_class": self.error_class.value, "status_code": status_code},
        )

    @property
    def retryable(self) -> bool:
        return self.error_class in DEFAULT_RETRYABLE_CLASSES


class UnexpectedTransportException(QueryEngineException):
    """transport가 TransportError가 아닌 예외를 던진 경우 (재시도 안 함)"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__(f"Unexpected transport failure: {reason}", "TRANSPORT_UNEXPECTED",
                         details or {"reason": reason})


# ============================================================================
# Scheduler / expansion
# ============================================================================

class DepthExceededException(QueryEngineException):
    """재귀 깊이 초과 - 스택에 넣지 않음"""
    def __init__(self, depth: int, max_depth: int, details: Optional[dict[str, Any]] = None):
        message = f"Recursion depth {depth} exceeds maximum {max_depth}"
        super().__init__(message, "DEPTH_EXCEEDED",
                         details or {"depth": depth, "max_depth": max_depth})
        self.depth = depth
        self.max_depth = max_depth


class ExpansionLimitExceededException(QueryEngineException):
    """루트당 파생 쿼리 개수 초과"""
    def __init__(self, root_id: str, limit: int, details: Optional[dict[str, Any]] = None):
        message = f"Root {root_id} reached the derived-request limit ({limit})"
        super().__init__(message, "EXPANSION_LIMIT_EXCEEDED",
                         details or {"root_id": root_id, "limit": limit})
        self.root_id = root_id
        self.limit = limit


class QueueFullException(QueryEngineException):
    """대기열(queue/stack) 용량 초과"""
    def __init__(self, structure: str, max_size: int, details: Optional[dict[str, Any]] = None):
        message = f"Scheduler {structure} is full (max {max_size})"
        super().__init__(message, "QUEUE_FULL",
                         details or {"structure": structure, "max_size": max_size})


class RequestCancelledException(QueryEngineException):
    """호출자가 취소한 요청"""
    def __init__(self, request_id: str, details: Optional[dict[str, Any]] = None):
        super().__init__(f"Request {request_id} was cancelled", "CANCELLED",
                         details or {"request_id": request_id})


class InvalidStateTransitionException(QueryEngineException):
    """요청 상태 머신 위반 (내부 버그 신호)"""
    def __init__(self, request_id: str, current: str, target: str):
        message = f"Request {request_id} cannot move from {current} to {target}"
        super().__init__(message, "INVALID_STATE_TRANSITION",
                         {"request_id": request_id, "current": current, "target": target})


# ============================================================================
# Validation
# ============================================================================

class ValidationException(QueryEngineException):
    """유효성 검증 예외"""
    def __init__(self, field: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Validation failed for '{field}': {reason}"
        super().__init__(message, "VALIDATION_ERROR",
                         details or {"field": field, "reason": reason})


class InvalidQueryException(ValidationException):
    """유효하지 않은 쿼리 텍스트"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__("query", reason, details)
        self.error_code = "INVALID_QUERY"
