"""해싱 유틸리티 - 쿼리 fingerprint 생성"""
import hashlib
import json
import re
import unicodedata
from typing import Any, Mapping, Optional

_WHITESPACE_RE = re.compile(r"\s+")


def hash_string(text: str) -> str:
    """
    문자열을 MD5 해시로 변환

    Args:
        text: 해시할 문자열

    Returns:
        MD5 해시 문자열 (32자)
    """
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def normalize_query_text(text: str) -> str:
    """캐시 키용 쿼리 정규화 (NFKC, 소문자, 공백 압축)"""
    normalized = unicodedata.normalize("NFKC", text or "")
    return _WHITESPACE_RE.sub(" ", normalized).strip().lower()


def generate_fingerprint(query: str, context: Optional[Mapping[str, Any]] = None) -> str:
    """
    쿼리 텍스트 + 구분용 컨텍스트로 캐시 키 생성

    부수효과가 없는 순수 함수입니다. 같은 논리적 쿼리(대소문자/공백 차이)는
    항상 같은 키가 되고, 컨텍스트(예: conversation_id)가 다르면 키도 달라집니다.
    값이 None인 컨텍스트 필드는 무시합니다.

    Args:
        query: 쿼리 텍스트
        context: 구분용 컨텍스트

    Returns:
        "query:<md5>" 형식의 fingerprint
    """
    relevant = {k: v for k, v in (context or {}).items() if v is not None}
    material = normalize_query_text(query)
    if relevant:
        material += "|" + json.dumps(relevant, sort_keys=True, ensure_ascii=False, default=str)
    return f"query:{hash_string(material)}"
