"""Transport layer - abstract agent call plus the HTTP adapter."""

from .base import AgentResponse, AgentTransport
from .http_transport import HttpAgentTransport, classify_status

__all__ = ["AgentResponse", "AgentTransport", "HttpAgentTransport", "classify_status"]
