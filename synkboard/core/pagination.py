"""Pagination helpers with hard caps."""

from __future__ import annotations

import math
import os
from typing import Optional

from fastapi import Response

from .config import settings


DEFAULT_PAGE_SIZE = 20


def get_max_page_size() -> int:
    raw = os.getenv("API_MAX_PAGE_SIZE", str(settings.api_max_page_size))
    try:
        val = int(raw)
    except Exception:
        val = settings.api_max_page_size
    if val < 1:
        return settings.api_max_page_size
    return val


def clamp_page_size(page_size: int) -> int:
    max_size = get_max_page_size()
    if page_size < 1:
        return 1
    return min(page_size, max_size)


def page_offset(page: int, page_size: int) -> int:
    return (max(page, 1) - 1) * page_size


def page_count(total: int, page_size: int) -> int:
    if page_size < 1:
        return 0
    return math.ceil(total / page_size)


def set_pagination_headers(
    response: Optional[Response],
    *,
    total: Optional[int],
    page: int,
    page_size: int,
) -> None:
    if not response:
        return
    if total is not None:
        response.headers["X-Total-Count"] = str(total)
    response.headers["X-Page"] = str(page)
    response.headers["X-Page-Size"] = str(page_size)
