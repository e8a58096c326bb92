# clinic_ledger/common/response.py

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


class SuccessResponse:
    @staticmethod
    def send(data=None, message="Success", status_code=200):
        response = {
            "success": True,
            "message": message,
            "data": jsonable_encoder(data),
        }
        return JSONResponse(content=response, status_code=status_code)


class ErrorResponse:
    @staticmethod
    def send(message="An error occurred", status_code=500, error=None, errors=None):
        response = {
            "success": False,
            "message": message,
            "error": error,
            "status_code": status_code,
        }
        if errors:
            response["errors"] = jsonable_encoder(errors)
        return JSONResponse(content=response, status_code=status_code)
