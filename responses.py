import math
from typing import Any, Optional


def ok(data: Any = None, message: str = "Operation successful") -> dict:
    """Success envelope: {success, message, data}."""
    return {"success": True, "message": message, "data": data}


def error_body(message: str = "An error occurred", errors: Optional[list] = None) -> dict:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def page_meta(total: int, limit: Optional[int], offset: Optional[int]) -> dict:
    current_page = offset // limit + 1 if offset and limit else 1
    total_pages = math.ceil(total / limit) if limit else 1
    return {"current_page": current_page, "total_pages": total_pages}
