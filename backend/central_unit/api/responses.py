"""
Result → HTTP mapping shared by the API routers

ValidationError → 400, NotFoundError → 404, ExternalNotifyError → 502.
Success and DecisionTimedOut pass through.
"""

from fastapi import HTTPException

from central_unit.models.result import ValidationError, NotFoundError, ExternalNotifyError


def raise_for_result(result):
    """Raise the HTTPException matching a failed result, else return it"""
    if isinstance(result, ValidationError):
        raise HTTPException(status_code=400, detail=result.message)

    if isinstance(result, NotFoundError):
        raise HTTPException(status_code=404, detail=result.message)

    if isinstance(result, ExternalNotifyError):
        raise HTTPException(status_code=502, detail=result.message)

    return result


def require(component, name: str):
    """503 until the component has been wired up in main.py"""
    if component is None:
        raise HTTPException(
            status_code=503,
            detail=f"{name} not initialized"
        )
    return component
