from fastapi.responses import JSONResponse

from services.ledger_errors import ERROR_CODES, LedgerError, InvalidPackage, StorageError, UnknownClassification

# HTTP status per ledger error
LEDGER_ERROR_STATUS = {
    UnknownClassification: 400,
    InvalidPackage: 422,
    StorageError: 503,
}


def success_response(data=None, message="OK", status=200):
    return JSONResponse(
        status_code=status,
        content={
            "ok": True,
            "data": data or {},
            "error": None,
            "message": message,
        }
    )


def error_response(error_code, status=400, message="An error occurred", data=None):
    return JSONResponse(
        status_code=status,
        content={
            "ok": False,
            "data": data or {},
            "error": error_code,
            "message": message,
        }
    )


def ledger_error_response(exc: LedgerError, data=None):
    status = LEDGER_ERROR_STATUS.get(type(exc), 500)
    # Storage details stay in the logs
    message = ERROR_CODES.get(exc.code) if isinstance(exc, StorageError) else str(exc)
    return error_response(exc.code, status=status, message=message, data=data)


def quota_exhausted_response(kind, data=None):
    """402 for a consume request denied for lack of credits."""
    return error_response(kind.value, status=402, message=ERROR_CODES[kind.value], data=data)
