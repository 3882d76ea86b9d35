from fastapi import HTTPException, status

from models.common import ApplyFailureReason


def bad_request_exception(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    )


_REJECTION_STATUS = {
    ApplyFailureReason.NOT_FOUND:      status.HTTP_404_NOT_FOUND,
    ApplyFailureReason.EXPIRED:        status.HTTP_410_GONE,
    ApplyFailureReason.USAGE_EXCEEDED: status.HTTP_409_CONFLICT,
    ApplyFailureReason.INELIGIBLE:     status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def promotion_rejected_exception(reason: ApplyFailureReason, message: str) -> HTTPException:
    """Code promo refusé : le détail garde la raison typée pour l'UI."""
    return HTTPException(
        status_code=_REJECTION_STATUS[reason],
        detail={"reason": reason.value, "message": message},
    )
