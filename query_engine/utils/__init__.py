"""Utility helpers."""

from .hash_utils import generate_fingerprint, hash_string, normalize_query_text

__all__ = ["generate_fingerprint", "hash_string", "normalize_query_text"]
