import pytest
from fastapi import HTTPException
from pymongo import ASCENDING, DESCENDING

from pagination import build_pagination, parse_sort


def test_first_page_has_next_only():
    p = build_pagination(page=1, limit=10, total=25)
    assert p["next"] == {"page": 2, "limit": 10}
    assert "prev" not in p
    assert p["pages"] == 3
    assert p["total"] == 25


def test_last_page_has_prev_only():
    p = build_pagination(page=3, limit=10, total=25)
    assert p["prev"] == {"page": 2, "limit": 10}
    assert "next" not in p


def test_middle_page_has_both():
    p = build_pagination(page=2, limit=10, total=25)
    assert p["next"] == {"page": 3, "limit": 10}
    assert p["prev"] == {"page": 1, "limit": 10}


def test_empty_result():
    p = build_pagination(page=1, limit=10, total=0)
    assert p["pages"] == 0
    assert "next" not in p and "prev" not in p


def test_parse_sort_default():
    assert parse_sort(None) == [("created_at", DESCENDING)]


def test_parse_sort_variants():
    assert parse_sort("-created_at,title") == [("created_at", DESCENDING), ("title", ASCENDING)]
    assert parse_sort("price:desc,order:asc") == [("price", DESCENDING), ("order", ASCENDING)]


def test_parse_sort_rejects_bad_direction():
    with pytest.raises(HTTPException) as exc:
        parse_sort("price:sideways")
    assert exc.value.status_code == 400
