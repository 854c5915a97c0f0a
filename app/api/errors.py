from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder

from app.schemas.scheduling import BookingErrorCode

ERROR_STATUS = {
    BookingErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    BookingErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    BookingErrorCode.INVALID_STATE_TRANSITION: status.HTTP_400_BAD_REQUEST,
}


def booking_http_error(
    error_code: BookingErrorCode, message: str, **extra
) -> HTTPException:
    """Translate a rejected booking result into an HTTP error.

    Calendar rule violations such as conflicts or closed days map to 409;
    the payload keeps the code and any conflict detail.
    """
    status_code = ERROR_STATUS.get(error_code, status.HTTP_409_CONFLICT)
    detail = {"error": message, "error_code": error_code.value}
    detail.update({key: value for key, value in extra.items() if value})
    return HTTPException(status_code=status_code, detail=jsonable_encoder(detail))
