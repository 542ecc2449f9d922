from __future__ import annotations

import base64
import binascii
import json
import math
from dataclasses import dataclass

from recordhub.core.errors import ValidationError
from recordhub.schemas.listing import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, PaginationRequest, PaginationResponse


@dataclass(frozen=True)
class PageWindow:
    limit: int
    offset: int
    page: int
    cursor_mode: bool = False


def encode_cursor(offset: int) -> str:
    raw = json.dumps({"offset": int(offset)}, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(token: str) -> int:
    token = (token or "").strip()
    if not token:
        return 0
    try:
        padded = token + "=" * (-len(token) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
        offset = data["offset"]
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError):
        raise ValidationError("malformed pagination cursor", details={"token": token})
    if not isinstance(offset, int) or isinstance(offset, bool) or offset < 0:
        raise ValidationError("malformed pagination cursor", details={"token": token})
    return offset


def resolve_window(pagination: PaginationRequest | None) -> PageWindow:
    """Turn a pagination request into a row window. Absent pagination is page 1 of 100."""
    if pagination is None:
        return PageWindow(limit=DEFAULT_PAGE_LIMIT, offset=0, page=1)
    limit = pagination.limit
    if pagination.cursor is not None:
        if pagination.cursor.limit is not None:
            limit = pagination.cursor.limit
        offset = decode_cursor(pagination.cursor.token)
        return PageWindow(limit=limit, offset=offset, page=offset // limit + 1, cursor_mode=True)
    page = pagination.offset.page if pagination.offset is not None else 1
    if limit < 1 or limit > MAX_PAGE_LIMIT or page < 1:
        raise ValidationError("pagination out of range", details={"limit": limit, "page": page})
    return PageWindow(limit=limit, offset=(page - 1) * limit, page=page)


def cap_total(total_items: int, max_results: int) -> int:
    if max_results and max_results > 0:
        return min(total_items, max_results)
    return total_items


def page_size(window: PageWindow, total_items: int) -> int:
    """Rows the current window actually returns once the (capped) total is known."""
    return max(0, min(window.limit, total_items - window.offset))


def calculate(total_items: int, limit: int, current_page: int) -> PaginationResponse:
    total_pages = max(1, math.ceil(total_items / limit))
    return PaginationResponse(
        total_items=total_items,
        current_page=current_page,
        total_pages=total_pages,
        has_next=current_page < total_pages,
        has_prev=current_page > 1,
    )


def paginate(total_items: int, window: PageWindow) -> PaginationResponse:
    response = calculate(total_items, window.limit, window.page)
    if not response.has_next:
        return response
    return response.model_copy(update={"next_token": encode_cursor(window.offset + window.limit)})
