"""Exceptions raised by the Kettle SDK."""

from typing import Optional


class KettleError(Exception):
    """Base exception for all Kettle SDK errors."""

    pass


class OfferValidationError(KettleError):
    """Raised when an offer, lien or account fails a validation rule.

    The ``reason`` attribute carries the human readable rule that failed
    (e.g. "Insufficient lender allowance") so callers can present it.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class SignerRequiredError(KettleError):
    """Raised when an operation needs a signer but none is bound."""

    def __init__(self, operation: str = "this operation"):
        super().__init__(f"A signer is required for {operation}. Use connect(signer) first.")


class TransportError(KettleError):
    """Raised when a JSON-RPC request fails or returns an error."""

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(message)


class ContractCallReverted(TransportError):
    """Raised when an eth_call reverts."""

    pass


class TransactionRejectedError(KettleError):
    """Raised when the user rejects a transaction in their wallet."""

    def __init__(self, message: str = "Transaction rejected"):
        super().__init__(message)


class TransactionFailedError(KettleError):
    """Raised when submitting a transaction fails unexpectedly."""

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message)


class TransactionUnconfirmedError(KettleError):
    """Raised when a submitted transaction could not be confirmed in time.

    The transaction may still succeed; ``tx_hash`` identifies it.
    """

    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(
            "Unable to confirm transaction, please check block explorer and try again"
        )
