from datetime import datetime,timezone
from typing import Any, Dict, Optional, Union
import uuid

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from storefront.common.constants import request_id_ctx

def now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes for timezone-aware columns
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def build_success(data: Any, request_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "success": True,
        "status": "ok",
        "data": data,
        "error": None,
        "request_id": request_id,
    }

def build_error(code: Union[str, int] = "UNKNOWN_ERROR",
                message: str = "Something went wrong",
                details: Optional[Any] = None,
                request_id: Optional[str] = None) -> Dict[str, Any]:

    return {
        "success": False,
        "status": "error",
        "message": message,
        "data": None,
        "error": {"code": code, "details": details if details is not None else {"message": message}},
        "request_id": request_id,
    }

def json_ok(content: Dict[str, Any], status_code: int = 200,headers = None) -> JSONResponse:
    return JSONResponse(jsonable_encoder(content), status_code=status_code,headers=headers)

def json_error(content: Dict[str, Any], status_code: int = 500, headers=None) -> JSONResponse:
    return JSONResponse(jsonable_encoder(content), status_code=status_code, headers=headers)

def success_response(data: Any, status_code: int = 200,headers: Optional[Dict[str, Any]] = None) -> JSONResponse:
    content = build_success(data, request_id=request_id_ctx.get(None))
    return json_ok(content, status_code=status_code,headers=headers)


def parse_public_id(value: str, label: str = "Resource") -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
