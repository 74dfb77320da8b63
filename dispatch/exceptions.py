"""
Errors raised across the dispatch boundary.

Business rejections (already matched, nothing to decline) are not errors:
they come back as MatchingActionResult(success=False, ...).
"""


class DispatchError(Exception):
    """Base error for the dispatch package."""
    pass


class RequestNotFound(DispatchError):
    """Raised when a delivery request id does not exist in the store."""

    def __init__(self, request_id: str):
        super().__init__(f"Request {request_id} not found")
        self.request_id = request_id
