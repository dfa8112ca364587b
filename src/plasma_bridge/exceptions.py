"""Unified exception hierarchy for the Plasma session coordinator.

All errors inherit from PlasmaException, enabling:
- Consistent handling by whatever host owns the session
- Machine-readable error codes
- Structured context (address, currency, amount, step) in ``details``

Usage:
    from plasma_bridge.exceptions import PlasmaException, UpstreamError

    try:
        receipt = await root_chain.deposit_eth(tx, amount, address)
    except Exception as e:
        raise UpstreamError("Deposit failed", step="deposit_eth") from e
"""
from __future__ import annotations

from typing import Any, List, Optional


class PlasmaException(Exception):
    """Base exception for all plasma_bridge errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_READY")
        details: Optional additional context
    """

    error_code: str = "PLASMA_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a serializable form."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Validation Errors
# =============================================================================

class PlasmaValidationError(PlasmaException):
    """Invalid input data or parameters."""

    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)


class InvalidAmountError(PlasmaValidationError):
    """Deposit or transfer amount is not a positive integer."""

    error_code = "INVALID_AMOUNT"

    def __init__(self, amount: Any, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Amount must be a positive integer, got {amount!r}",
            field="amount",
            details={"amount": str(amount)},
        )


class InvalidAddressError(PlasmaValidationError):
    """Address is not a 20-byte hex address."""

    error_code = "INVALID_ADDRESS"

    def __init__(self, address: Any, field: str = "address") -> None:
        super().__init__(
            f"Invalid {field}: {address!r}",
            field=field,
            details={"address": str(address)},
        )


class TransactionBuildError(PlasmaValidationError):
    """Selected inputs cannot form a valid child-chain transaction."""

    error_code = "TRANSACTION_BUILD_ERROR"


# =============================================================================
# Lifecycle Errors
# =============================================================================

class NotReadyError(PlasmaException):
    """Operation attempted before the session finished initializing."""

    error_code = "NOT_READY"

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(
            f"Cannot {operation}: the Plasma session is not ready (state={state}). "
            "Please wait for the Plasma chain to initialize.",
            details={"operation": operation, "state": state},
        )


class AlreadyInitializingError(PlasmaException):
    """Re-entrant init while another init is in flight."""

    error_code = "ALREADY_INITIALIZING"

    def __init__(self) -> None:
        super().__init__("Already initializing the Plasma chain, please wait...")


# =============================================================================
# Funds / Selection Errors
# =============================================================================

class InsufficientFundsError(PlasmaException):
    """No combination of at most four UTXOs covers the requested amount."""

    error_code = "INSUFFICIENT_FUNDS"

    def __init__(self, address: str, amount: int, currency: str) -> None:
        super().__init__(
            f"No UTXO set of {address} big enough to cover {amount} of {currency}",
            details={"address": address, "amount": str(amount), "currency": currency},
        )


class InsufficientFeeFundsError(PlasmaException):
    """No spare native-currency UTXO is available to pay the child-chain fee."""

    error_code = "INSUFFICIENT_FEE_FUNDS"

    def __init__(self, currency: str, fee_currency: str, fee: int = 0) -> None:
        super().__init__(
            f"Can't find a {fee_currency} fee UTXO of at least {fee} for a {currency} transaction",
            details={"currency": currency, "fee_currency": fee_currency, "fee": str(fee)},
        )


class NoUtxosFoundError(PlasmaException):
    """Address holds no UTXOs on the child chain."""

    error_code = "NO_UTXOS"

    def __init__(self, address: str) -> None:
        super().__init__(
            f"No UTXOs found on the Plasma chain for {address}.",
            details={"address": address},
        )


# =============================================================================
# Signing Errors
# =============================================================================

class SigningMethodUnsupportedError(PlasmaException):
    """Signing provider does not implement typed-data signing."""

    error_code = "SIGNING_METHOD_UNSUPPORTED"

    def __init__(self, method: str, reason: Optional[str] = None) -> None:
        message = f"Signing provider does not support {method}"
        if reason:
            message += f": {reason}"
        super().__init__(message, details={"method": method})
        self.method = method


# =============================================================================
# Upstream Errors (chain clients, providers)
# =============================================================================

class UpstreamError(PlasmaException):
    """Opaque failure of a chain client or provider, tagged with the failing step."""

    error_code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if step:
            details["step"] = step
        super().__init__(message, details=details)
        self.step = step


class RPCError(UpstreamError):
    """JSON-RPC error returned by the root-chain node."""

    error_code = "RPC_ERROR"

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(message, details={"code": code} if code is not None else None)
        self.code = code
        self.data = data


class ChildChainError(UpstreamError):
    """Error envelope returned by the child-chain watcher API."""

    error_code = "CHILDCHAIN_ERROR"

    def __init__(
        self,
        endpoint: str,
        code: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Child chain request {endpoint} failed: {code or 'unknown'}"
            + (f" ({description})" if description else ""),
            step=endpoint,
            details={"code": code, "description": description},
        )
        self.code = code
        self.description = description


class TransactionRevertedError(UpstreamError):
    """Root-chain transaction was mined with status 0."""

    error_code = "TRANSACTION_REVERTED"

    def __init__(self, tx_hash: str) -> None:
        super().__init__(
            f"Transaction {tx_hash} failed on-chain",
            details={"tx_hash": tx_hash},
        )
        self.tx_hash = tx_hash


class SessionInitError(UpstreamError):
    """Session initialization failed."""

    error_code = "SESSION_INIT_ERROR"


class DepositError(UpstreamError):
    """A step of the deposit flow failed."""

    error_code = "DEPOSIT_ERROR"


class ExitError(UpstreamError):
    """A step of the exit flow failed."""

    error_code = "EXIT_ERROR"


class TransactionSubmitError(UpstreamError):
    """Child-chain submission of a signed transaction failed."""

    error_code = "TRANSACTION_SUBMIT_ERROR"


class ConfirmationError(UpstreamError):
    """Receipt lookup failed while waiting for a confirmation."""

    error_code = "CONFIRMATION_ERROR"


# =============================================================================
# Confirmation Errors
# =============================================================================

class UncleDetectedError(PlasmaException):
    """Transaction was dropped by a chain reorganization."""

    error_code = "UNCLE_DETECTED"

    def __init__(self, tx_hash: str, block_number: Optional[int] = None) -> None:
        super().__init__(
            f"Transaction with hash: {tx_hash} ended up in an uncle block.",
            details={"tx_hash": tx_hash, "block_number": block_number},
        )
        self.tx_hash = tx_hash


class ConfirmationTimeoutError(PlasmaException):
    """Transaction was not confirmed within the allotted time."""

    error_code = "CONFIRMATION_TIMEOUT"

    def __init__(self, tx_hash: str, timeout_seconds: float, state: str) -> None:
        super().__init__(
            f"Transaction {tx_hash} not confirmed after {timeout_seconds}s. "
            f"Current state: {state}",
            details={"tx_hash": tx_hash, "timeout_seconds": timeout_seconds, "state": state},
        )
        self.tx_hash = tx_hash


# =============================================================================
# Bulk Errors
# =============================================================================

class PartialExitFailureError(PlasmaException):
    """One or more UTXOs failed to exit during a bulk exit."""

    error_code = "PARTIAL_EXIT_FAILURE"

    def __init__(self, address: str, messages: List[str], errors: List[str]) -> None:
        self.messages = list(messages)
        self.errors = list(errors)
        summary = "\n\n".join(self.errors)
        if self.messages:
            summary += "\n\nSucceeded:\n" + "\n".join(self.messages)
        super().__init__(
            summary,
            details={
                "address": address,
                "succeeded": len(self.messages),
                "failed": len(self.errors),
            },
        )
