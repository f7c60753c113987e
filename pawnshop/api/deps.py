"""
Shared API dependencies
"""

from contextlib import contextmanager
from typing import Any, Dict, Optional

from fastapi import Header, HTTPException, status

from ..exceptions import (
    AlreadyInStateError, ConcurrencyConflictError, NotAllPaidError, NotFoundError,
    NotPaidError, PawnshopError, PersistenceError,
)
from ..logging_config import get_logger
from ..storage import to_document
from ..system import PawnshopSystem


logger = get_logger("pawnshop.api")

_system: Optional[PawnshopSystem] = None


def get_system() -> PawnshopSystem:
    """Process-wide system, built from configuration on first use"""
    global _system
    if _system is None:
        _system = PawnshopSystem()
    return _system


def get_actor(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Staff member performing the request, from the X-User-Id header"""
    return x_user_id


@contextmanager
def http_errors():
    """Translate domain exceptions into HTTP errors"""
    try:
        yield
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (AlreadyInStateError, NotPaidError, NotAllPaidError, ConcurrencyConflictError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Storage failure: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail="Storage unavailable")
    except PawnshopError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def document(value: Any) -> Any:
    """JSON-safe response body; Decimals stay exact as strings"""
    return to_document(value)


def page_limit(limit: Optional[int], system: PawnshopSystem) -> int:
    if limit is None:
        return system.config.default_page_size
    return max(1, min(limit, system.config.max_page_size))


def changes_of(request) -> Dict[str, Any]:
    """Fields explicitly sent in a partial-update request"""
    return request.dict(exclude_unset=True)
