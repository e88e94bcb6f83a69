"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Ledger records
  2xxx: Chain indexer
  3xxx: Transaction submission
  4xxx: Validation
"""


class AppError(Exception):
    """Base application error."""

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


# --- 1xxx: Ledger ---

class ListingNotFoundError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(1001, f"Listing not found: {listing_id}")


class ListingNotPurchasableError(AppError):
    def __init__(self, listing_id: str, status: str) -> None:
        super().__init__(1002, f"Listing {listing_id} in status {status} cannot be purchased")


class ListingNotEditableError(AppError):
    def __init__(self, listing_id: str, status: str) -> None:
        super().__init__(1003, f"Listing {listing_id} in status {status} cannot be changed")


class AccessTypeMismatchError(AppError):
    def __init__(self, listing_id: str, access_type: str) -> None:
        super().__init__(
            1004, f"Listing {listing_id} has access type {access_type}, not subscription"
        )


# --- 2xxx: Chain indexer ---

class IndexerUnavailableError(AppError):
    """Transient: the indexer database could not be queried."""

    def __init__(self, detail: str) -> None:
        super().__init__(2001, f"Chain indexer unavailable: {detail}")


class NoExchangeRateError(AppError):
    def __init__(self, currency: str) -> None:
        super().__init__(2002, f"No exchange rate published for currency {currency}")


# --- 3xxx: Submission ---

class SubmissionError(AppError):
    """Terminal: the transaction could not be submitted."""

    def __init__(self, detail: str, code: int = 3001) -> None:
        super().__init__(code, f"Transaction submission failed: {detail}")


class SubmissionRejectedError(SubmissionError):
    """The node refused the transaction (malformed, insufficient funds, double-spend)."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail, code=3002)


class TransientSubmissionError(SubmissionError):
    """Network blip or provider overload; safe to retry."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail, code=3003)


# --- 4xxx: Validation ---

class DatumValidationError(AppError):
    def __init__(self, action: str, detail: str) -> None:
        super().__init__(4001, f"Invalid {action} datum: {detail}")


class UnknownActionError(AppError):
    def __init__(self, action: str) -> None:
        super().__init__(4002, f"Unknown marketplace action: {action}")

