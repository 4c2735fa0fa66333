"""Bulk text parsing package."""

from account_manager.parsing.parser import (
    FIELD_ORDER,
    ParsedRecord,
    ParseReport,
    iter_records,
    looks_like_email,
    parse_records,
)

__all__ = [
    "FIELD_ORDER",
    "ParsedRecord",
    "ParseReport",
    "iter_records",
    "looks_like_email",
    "parse_records",
]
