from fastapi import HTTPException, status
from rules.errors import (
    ColumnInUse, ConfigurationError, DuplicateRule, NotAllowed, RuleEngineError,
    RuleNotFound, StaleMove
)


def http_error(exc: RuleEngineError) -> HTTPException:
    """Translate a rule engine error into the HTTP error the API returns."""
    if isinstance(exc, DuplicateRule):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "existingId": exc.existing_id}
        )
    if isinstance(exc, ConfigurationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": exc.message, "field": exc.field}
        )
    if isinstance(exc, RuleNotFound):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{exc.kind.capitalize()} not found"
        )
    if isinstance(exc, (StaleMove, ColumnInUse)):
        detail = {"message": str(exc)}
        if isinstance(exc, ColumnInUse):
            detail["relatedColumnId"] = exc.related_column_id
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
    if isinstance(exc, NotAllowed):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
