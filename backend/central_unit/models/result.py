"""
Result Types

Small tagged-result type returned across the incident pipeline instead of
ad hoc exceptions:

    Success(payload) | ValidationError | NotFoundError
                     | DecisionTimedOut | ExternalNotifyError

Only Success is ``ok``. DecisionTimedOut is not an error for callers: it
carries the same payload as Success (decision status TIMEOUT, speed limit
unchanged) so the HTTP layer can answer 200 while logging the incident as
unresolved.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass(frozen=True)
class Success:
    """Operation completed; ``payload`` holds the response body"""
    payload: Any = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ValidationError:
    """Malformed input rejected before any pending decision was created"""
    message: str
    field: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class NotFoundError:
    """Referenced resource (usually a node) does not exist"""
    message: str
    resource_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class DecisionTimedOut:
    """No operator decision arrived in time; payload reflects prior state"""
    payload: Any = None

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class ExternalNotifyError:
    """Cooperating system unreachable, slow or answered non-2xx"""
    message: str
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return False


Result = Union[Success, ValidationError, NotFoundError, DecisionTimedOut, ExternalNotifyError]
