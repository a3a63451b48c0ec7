from __future__ import annotations


class ReceiptValidationError(ValueError):
    """Raised when OCR text does not yield a usable receipt.

    Fatal to the receipt being processed: the caller removes the in-progress
    record and reports the message to the user. Never retried automatically.
    """

    def __init__(self, message: str, *, vendor: str | None = None) -> None:
        super().__init__(message)
        self.vendor = vendor
