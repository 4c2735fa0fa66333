"""
Text Record Parser

Turns raw pasted text into candidate account records.

Two shapes are accepted, and may be mixed in one paste:

HORIZONTAL - one account per line, fields in a fixed order:
    login;password;authenticatorToken;appPassword;authenticatorUrl;messagesUrl
  ``----`` works as a delimiter too (``login----password----token``).
  Fields past the sixth are kept as ``extra`` (it ends up in the note).

VERTICAL - one field per line (optionally ';'-terminated), same order.
  A record ends at a blank line, after its sixth field, or when an
  e-mail-looking line shows up (a login still waiting for its password
  is then reported as skipped).

IMPORTANT: A record without login or password is NOT an error.
It is reported as skipped and the rest of the paste is still imported.
"""

import re
from collections.abc import Iterator
from typing import Optional

from pydantic import BaseModel, Field

from account_manager.models.store import ImportCandidate, SkippedRecord


FIELD_ORDER = (
    "login",
    "password",
    "authenticator_token",
    "app_password",
    "authenticator_url",
    "messages_url",
)
FIELD_COUNT = len(FIELD_ORDER)

DASH_DELIMITER = "----"
SEMICOLON_DELIMITER = ";"
EXTRA_SEPARATOR = "; "

EMAIL_PATTERN = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$", re.IGNORECASE)


class ParsedRecord(BaseModel):
    """Outcome for one record: exactly one of candidate/skipped is set."""

    line_number: int = Field(..., ge=1)
    candidate: Optional[ImportCandidate] = None
    skipped: Optional[SkippedRecord] = None

    @property
    def is_valid(self) -> bool:
        return self.candidate is not None


class ParseReport(BaseModel):
    """All records found in one paste."""

    candidates: list[ImportCandidate] = Field(default_factory=list)
    skipped: list[SkippedRecord] = Field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def looks_like_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value.strip()))


def _split_horizontal(line: str) -> Optional[list[str]]:
    """Split a one-line record, or return None for a single-field line."""
    if DASH_DELIMITER in line:
        return [part.strip() for part in line.split(DASH_DELIMITER)]

    stripped = line.rstrip(SEMICOLON_DELIMITER).strip()
    if SEMICOLON_DELIMITER in stripped:
        return [part.strip() for part in stripped.split(SEMICOLON_DELIMITER)]

    return None


def _build_record(
    fields: list[str],
    line_number: int,
    default_authenticator_url: str = "",
) -> ParsedRecord:
    values = dict(zip(FIELD_ORDER, fields))
    login = values.get("login", "")
    password = values.get("password", "")

    if not login:
        reason = "missing login"
    elif not password:
        reason = "missing password"
    else:
        reason = None

    if reason:
        return ParsedRecord(
            line_number=line_number,
            skipped=SkippedRecord(
                line_number=line_number,
                reason=reason,
                field_count=sum(1 for value in fields if value),
            ),
        )

    extra = EXTRA_SEPARATOR.join(value for value in fields[FIELD_COUNT:] if value)
    if (
        default_authenticator_url
        and values.get("authenticator_token")
        and not values.get("authenticator_url")
    ):
        values["authenticator_url"] = default_authenticator_url

    return ParsedRecord(
        line_number=line_number,
        candidate=ImportCandidate(**values, extra=extra),
    )


def iter_records(
    raw: str,
    default_authenticator_url: str = "",
) -> Iterator[ParsedRecord]:
    """
    Lazily parse ``raw`` into records, in input order.

    Args:
        raw: Pasted text, any line endings
        default_authenticator_url: Given to records that have a token
            but no authenticator URL (empty disables)

    Yields:
        One ParsedRecord per record found, valid or skipped
    """
    buffer: list[str] = []
    start_line = 0

    def flush() -> Optional[ParsedRecord]:
        nonlocal buffer
        if not buffer:
            return None
        record = _build_record(buffer, start_line, default_authenticator_url)
        buffer = []
        return record

    for line_number, raw_line in enumerate(raw.splitlines(), start=1):
        line = raw_line.strip()
        value = line.rstrip(SEMICOLON_DELIMITER).strip()

        if not value:
            record = flush()
            if record:
                yield record
            continue

        parts = _split_horizontal(line)
        if parts is not None:
            record = flush()
            if record:
                yield record
            yield _build_record(parts, line_number, default_authenticator_url)
            continue

        # Vertical shape: an e-mail line always opens a new record
        if buffer and looks_like_email(value):
            record = flush()
            if record:
                yield record

        if not buffer:
            start_line = line_number
        buffer.append(value)

        if len(buffer) == FIELD_COUNT:
            record = flush()
            if record:
                yield record

    record = flush()
    if record:
        yield record


def parse_records(raw: str, default_authenticator_url: str = "") -> ParseReport:
    """Parse the whole paste and split candidates from skipped records."""
    report = ParseReport()
    for record in iter_records(raw, default_authenticator_url):
        if record.is_valid:
            report.candidates.append(record.candidate)
        elif record.skipped is not None:
            report.skipped.append(record.skipped)
    return report
