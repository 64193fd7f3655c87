"""
Log service - request validation and the deletion policy.

Sits between the transport and the LogStore:
- Normalizes and validates raw request values before any storage call
- Runs each storage call under the request deadline
- Enforces the severity-gated deletion policy

Invariants:
    - Invalid input raises ValidationError and never reaches storage
    - A missing flag on create defaults to info
    - Delete succeeds only for flags ranked below DELETE_RANK_LIMIT
      (log, debug, info, warn); error and trace are protected
    - Flags are immutable after creation, so the lookup-then-delete
      sequence cannot race against a flag change

How to change safely:
    - Keep validation ahead of the first await on the store
    - If flags ever become mutable, move the rank check into the
      delete statement itself
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from collections.abc import Awaitable
from datetime import datetime
from typing import Any, TypeVar

from .errors import ForbiddenError, RequestTimeoutError, ValidationError
from .severity import DEFAULT_SEVERITY, get_rank, normalize, parse_severity
from .store import LogRecord, LogStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# RFC 3339, optional fraction of any length, offset optional (read as UTC)
_TIMESTAMP_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt ](?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})?$"
)


def parse_record_id(raw: str | None) -> str:
    """Validate a record id and return its canonical form.

    Raises:
        ValidationError: If ``raw`` is not a UUID
    """
    value = (raw or "").strip()
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ValidationError(f"Invalid log id: {raw!r}", field_name="id") from None


def parse_timestamp(raw: str | None) -> datetime:
    """Parse an RFC 3339 timestamp, with or without fractional seconds.

    Fractions beyond microseconds are truncated. A timestamp without an
    offset is read as UTC.

    Raises:
        ValidationError: If ``raw`` cannot be parsed
    """
    value = (raw or "").strip()
    match = _TIMESTAMP_RE.match(value)
    if not match:
        raise ValidationError(f"Invalid timestamp: {raw!r}", field_name="timestamp")

    fraction = (match.group("fraction") or "0")[:6].ljust(6, "0")
    offset = match.group("offset") or "+00:00"
    if offset in ("Z", "z"):
        offset = "+00:00"

    try:
        return datetime.fromisoformat(
            f"{match.group('date')}T{match.group('time')}.{fraction}{offset}"
        )
    except ValueError:
        raise ValidationError(f"Invalid timestamp: {raw!r}", field_name="timestamp") from None


class LogService:
    """Validates requests and orchestrates the log store.

    Attributes:
        store: Log store used for every storage call
        request_timeout: Deadline in seconds for each storage call (None = no deadline)
        max_page_size: Upper bound for list page sizes

    Example:
        >>> service = LogService(LogStore(database), request_timeout=5.0)
        >>> record = await service.create(" WARN ", "disk almost full")
        >>> record.flag
        <Severity.WARN: 'warn'>
    """

    def __init__(
        self,
        store: LogStore,
        request_timeout: float | None = None,
        max_page_size: int = 500,
    ) -> None:
        self.store = store
        self.request_timeout = request_timeout
        self.max_page_size = max_page_size

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        if self.request_timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self.request_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"{operation} exceeded request deadline",
                extra={"operation": operation, "timeout": self.request_timeout},
            )
            raise RequestTimeoutError(operation, self.request_timeout) from None

    async def create(self, flag: str | None, message: str | None) -> LogRecord:
        """Create a log record.

        Args:
            flag: Free-form flag; empty or missing defaults to info
            message: Log text, must be non-empty

        Returns:
            The stored record

        Raises:
            ValidationError: If the message is empty or the flag is unknown
            StorageError: If the insert fails
        """
        if not message:
            raise ValidationError("message is required", field_name="message")

        if normalize(flag):
            severity = parse_severity(flag)
            if severity is None:
                raise ValidationError(f"Invalid flag value: {flag!r}", field_name="flag")
        else:
            severity = DEFAULT_SEVERITY

        record = await self._call("create", self.store.insert(severity, message))
        logger.info("Created log", extra={"record_id": record.id, "flag": severity.value})
        return record

    async def fetch_by_id(self, raw_id: str | None) -> LogRecord:
        """Fetch a single record by id.

        Raises:
            ValidationError: If the id is malformed
            NotFoundError: If no record has this id
        """
        record_id = parse_record_id(raw_id)
        return await self._call("fetch_by_id", self.store.find_by_id(record_id))

    async def fetch_at_or_before(self, raw: str | None) -> LogRecord:
        """Fetch the latest record at or before a timestamp.

        Raises:
            ValidationError: If the timestamp cannot be parsed
            NotFoundError: If no record is that old
        """
        timestamp = parse_timestamp(raw)
        return await self._call(
            "fetch_at_or_before", self.store.find_latest_at_or_before(timestamp)
        )

    async def fetch_by_flag(self, raw: str | None) -> list[LogRecord]:
        """Fetch every record with the given flag (case and whitespace insensitive).

        Raises:
            ValidationError: If the flag is not canonical
        """
        severity = parse_severity(raw)
        if severity is None:
            raise ValidationError(f"Unknown flag: {raw!r}", field_name="flag")
        return await self._call("fetch_by_flag", self.store.list_by_flag(severity))

    async def list_all(self, limit: int | None = None, offset: int = 0) -> list[LogRecord]:
        """List records, optionally paginated.

        Raises:
            ValidationError: If limit or offset is out of range
        """
        if limit is not None and not 1 <= limit <= self.max_page_size:
            raise ValidationError(
                f"limit must be between 1 and {self.max_page_size}", field_name="limit"
            )
        if offset < 0:
            raise ValidationError("offset must not be negative", field_name="offset")
        if offset and limit is None:
            raise ValidationError("offset requires limit", field_name="offset")
        return await self._call("list_all", self.store.list_all(limit=limit, offset=offset))

    async def delete(self, raw_id: str | None) -> LogRecord:
        """Delete a record if its flag permits it.

        Returns:
            The deleted record

        Raises:
            ValidationError: If the id is malformed
            NotFoundError: If no record has this id
            ForbiddenError: If the record's flag is protected
        """
        record_id = parse_record_id(raw_id)
        record = await self._call("delete", self.store.find_by_id(record_id))

        if not record.flag.deletable:
            logger.warning(
                "Refused to delete protected log",
                extra={"record_id": record.id, "flag": record.flag.value},
            )
            raise ForbiddenError(record.id, record.flag.value)

        await self._call("delete", self.store.delete(record))
        logger.info(
            "Deleted log",
            extra={"record_id": record.id, "flag": record.flag.value, "rank": get_rank(record.flag)},
        )
        return record

    async def health(self) -> dict[str, Any]:
        """Report storage reachability."""
        try:
            healthy = await self._call("health", self.store.ping())
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return {"healthy": False, "error": str(e)}
        return {"healthy": healthy}
