"""
Logging utilities for Plasma session operations.

Features:
- Operation context tracking (duration, success, failure reason)
- Sensitive data masking for configured accounts and private keys
- Optional address masking
"""
from __future__ import annotations

import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional, Sequence

MASK_PATTERN = "***MASKED***"
SENSITIVE_FIELDS = frozenset({"private_key", "privatekey", "secret", "mnemonic", "password"})


class OperationType(str, Enum):
    """Types of session operations."""
    INIT = "init"
    DEPOSIT = "deposit"
    TRANSFER = "transfer"
    EXIT = "exit"
    EXIT_ALL = "exit_all"
    BALANCES = "balances"
    STATE_REFRESH = "state_refresh"


@dataclass
class OperationContext:
    """Context for one session operation."""
    operation_id: str
    operation_type: OperationType
    address: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def complete(self, success: bool = True, error: Optional[str] = None) -> None:
        """Mark operation as complete."""
        self.completed_at = datetime.now(timezone.utc)
        self.duration_ms = (
            (self.completed_at - self.started_at).total_seconds() * 1000
        )
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "operation_id": self.operation_id,
            "operation_type": self.operation_type.value,
            "address": self.address,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata,
        }


def mask_value(value: str, show_chars: int = 4) -> str:
    """Mask a sensitive value, showing only its first and last characters."""
    if not value or len(value) <= show_chars * 2:
        return MASK_PATTERN
    return f"{value[:show_chars]}...{value[-show_chars:]}"


def mask_address(address: str) -> str:
    """Mask middle portion of address for privacy."""
    if len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def is_sensitive_key(key: str) -> bool:
    """Check if a key name indicates sensitive data."""
    key_lower = key.lower().replace("-", "_")
    return key_lower in SENSITIVE_FIELDS or any(
        sensitive in key_lower for sensitive in ("secret", "private", "mnemonic")
    )


def mask_sensitive_data(
    data: Any,
    additional_fields: Optional[Sequence[str]] = None,
    _depth: int = 0,
    _max_depth: int = 10,
) -> Any:
    """Recursively mask sensitive values in dicts/lists.

    Args:
        data: The data structure to mask
        additional_fields: Extra key names to mask

    Returns:
        Copy of data with sensitive values masked
    """
    if _depth > _max_depth:
        return data

    extra = {f.lower() for f in additional_fields or ()}

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if is_sensitive_key(str(key)) or str(key).lower() in extra:
                result[key] = MASK_PATTERN
            else:
                result[key] = mask_sensitive_data(value, additional_fields, _depth + 1, _max_depth)
        return result
    if isinstance(data, (list, tuple)):
        return type(data)(
            mask_sensitive_data(item, additional_fields, _depth + 1, _max_depth)
            for item in data
        )
    return data


class SessionLogger:
    """Structured logger for session operations."""

    def __init__(
        self,
        name: str = "plasma_bridge",
        operation_level: str = "INFO",
        error_level: str = "ERROR",
        mask_addresses: bool = False,
    ):
        self._logger = logging.getLogger(name)
        self._operation_level = self._get_level(operation_level)
        self._error_level = self._get_level(error_level)
        self._mask_addresses = mask_addresses
        self._operation_counter = 0

    def _generate_operation_id(self) -> str:
        self._operation_counter += 1
        timestamp = int(time.time() * 1000)
        return f"op_{timestamp}_{self._operation_counter}"

    @staticmethod
    def _get_level(level_str: str) -> int:
        return getattr(logging, level_str.upper(), logging.INFO)

    def display_address(self, address: str) -> str:
        return mask_address(address) if self._mask_addresses else address

    @asynccontextmanager
    async def operation_context(
        self,
        operation_type: OperationType,
        address: str,
        **metadata: Any,
    ) -> AsyncIterator[OperationContext]:
        """
        Track an operation from start to completion.

        Usage:
            async with log.operation_context(OperationType.TRANSFER, address) as ctx:
                ctx.metadata["txhash"] = result["txhash"]
        """
        ctx = OperationContext(
            operation_id=self._generate_operation_id(),
            operation_type=operation_type,
            address=self.display_address(address),
            metadata=mask_sensitive_data(metadata),
        )

        self._logger.debug(
            f"Starting {operation_type.value} for {ctx.address}",
            extra={"operation": ctx.to_dict()},
        )

        try:
            yield ctx
            ctx.complete(success=True)
        except BaseException as e:
            ctx.complete(success=False, error=str(e) or type(e).__name__)
            raise
        finally:
            level = self._operation_level if ctx.success else self._error_level
            self._logger.log(
                level,
                f"Completed {operation_type.value} for {ctx.address} in "
                f"{ctx.duration_ms or 0:.0f}ms (success={ctx.success})",
                extra={"operation": ctx.to_dict()},
            )

    def log_event(self, message: str, level: str = "INFO", **data: Any) -> None:
        """Log a free-form event with masked structured data."""
        payload = json.dumps(mask_sensitive_data(data), default=str)
        self._logger.log(self._get_level(level), f"{message} {payload}")


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """Set up logging configuration for a host process."""
    if format_string is None:
        if json_format:
            format_string = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
        else:
            format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=format_string,
    )

    logging.getLogger("plasma_bridge").setLevel(getattr(logging, level.upper()))
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
