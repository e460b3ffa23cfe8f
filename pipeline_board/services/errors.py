"""
Pipeline Board - Error taxonomy

AuthorizationDenied  -> gate failure, raised before any network call
NetworkFailure       -> transport error / non-2xx, triggers batch revert
Validation and stale stages are never raised (dropped / coerced on ingest).
"""

from typing import Iterable, List, Optional


class PipelineError(Exception):
    """Base class for every pipeline board error"""
    pass


class AuthorizationDenied(PipelineError):
    """Raised when a user may not move one or more items"""

    def __init__(self, message: str, item_ids: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.item_ids: List[str] = list(item_ids or [])


class UnknownPipelineItem(PipelineError):
    """Raised when an item id is not on the loaded board"""

    def __init__(self, item_id: str):
        super().__init__(f"Unknown pipeline item: {item_id}")
        self.item_id = item_id


class NetworkFailure(PipelineError):
    """Timeout, connection error or non-2xx response"""

    def __init__(self, message: str, status_code: Optional[int] = None, item_id: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.item_id = item_id


class RequestTimeout(NetworkFailure):
    pass


class NotAuthenticated(NetworkFailure):
    """No bearer token available, nothing was sent"""
    pass


class SessionExpired(NetworkFailure):
    """Server answered 401"""
    pass
