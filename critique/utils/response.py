from typing import Any


def success_response(data: Any = None, message: str | None = None) -> dict:
    return {"status": "success", "data": data, "message": message}


def error_response(message: str, data: Any = None) -> dict:
    return {"status": "error", "data": data, "message": message}


# Stage endpoints use the flat {success, ...} shape the web UI expects.

def stage_success(**fields: Any) -> dict:
    return {"success": True, **fields}


def stage_error(error: str, stage: str | None = None, **fields: Any) -> dict:
    return {"success": False, "error": error, "stage": stage, **fields}
