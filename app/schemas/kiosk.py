from typing import Any, Union

from pydantic import BaseModel


class ScanRequest(BaseModel):
    # raw QR text, or the already-decoded JSON object
    qrCode: Union[str, dict[str, Any]]


class CompleteExitRequest(BaseModel):
    bookingId: str
    outcome: str  # "paid"; anything else settles as a due
