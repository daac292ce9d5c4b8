import math
from typing import Any, Dict, List, Tuple

from fastapi import HTTPException
from pymongo import ASCENDING, DESCENDING

DEFAULT_SORT = "-created_at"


def parse_sort(sort: str = None) -> List[Tuple[str, int]]:
    """Turn `-created_at,title` or `price:asc` into a pymongo sort list."""
    keys: List[Tuple[str, int]] = []
    for part in (sort or DEFAULT_SORT).split(","):
        part = part.strip()
        if not part:
            continue
        if ":" in part:
            field, direction = part.split(":", 1)
            direction = direction.strip().lower()
            if direction not in ("asc", "desc", "1", "-1"):
                raise HTTPException(status_code=400, detail=f"Invalid sort direction: {direction}")
            keys.append((field.strip(), ASCENDING if direction in ("asc", "1") else DESCENDING))
        elif part.startswith("-"):
            keys.append((part[1:], DESCENDING))
        else:
            keys.append((part.lstrip("+"), ASCENDING))
    return keys or [("created_at", DESCENDING)]


def skip_for(page: int, limit: int) -> int:
    return (page - 1) * limit


def build_pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    skip = skip_for(page, limit)
    pagination: Dict[str, Any] = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }
    if page * limit < total:
        pagination["next"] = {"page": page + 1, "limit": limit}
    if skip > 0:
        pagination["prev"] = {"page": page - 1, "limit": limit}
    return pagination


def paginate(collection, query: Dict[str, Any], page: int, limit: int, sort: str = None):
    """Run count + find for one page. Returns (documents, pagination)."""
    total = collection.count_documents(query)
    cursor = collection.find(query).sort(parse_sort(sort)).skip(skip_for(page, limit)).limit(limit)
    return list(cursor), build_pagination(page, limit, total)
