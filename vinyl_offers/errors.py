# vinyl_offers/errors.py

"""Exception types raised by the offer resolution engine."""


class OfferEngineError(Exception):
    """Base class for engine errors."""

    def __init__(
        self,
        message: str = "Offer engine error",
        original_exception: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_exception = original_exception

    def __str__(self) -> str:
        if self.original_exception:
            return f"{self.message} (caused by: {self.original_exception})"
        return self.message


class InputError(OfferEngineError):
    """The request cannot be resolved as given (missing identifier fields)."""


class VendorError(OfferEngineError):
    """A single vendor call failed after exhausting its retries."""

    def __init__(
        self,
        vendor_id: str,
        message: str = "Vendor call failed",
        original_exception: Exception | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"[{vendor_id}] {message}", original_exception)
        self.vendor_id = vendor_id
        self.status_code = status_code
        if status_code:
            self.message += f" (HTTP {status_code})"


class StoreError(OfferEngineError):
    """The durable offer store could not be read or written."""
