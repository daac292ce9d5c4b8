import csv
import io
from datetime import date, datetime
from typing import Any, Dict, Iterable, List

DEFAULT_BOOK_FIELDS = [
    "title.en", "title.ta", "author.en", "author.ta",
    "category", "price", "original_price", "stock", "isbn",
    "pages", "language", "publisher.en", "publisher.ta",
    "featured", "bestseller", "new_arrival", "discount",
    "ratings.average", "ratings.count", "status", "created_at",
]

HEADER_LABELS = {
    "title.en": "Title (English)",
    "title.ta": "Title (Tamil)",
    "author.en": "Author (English)",
    "author.ta": "Author (Tamil)",
    "publisher.en": "Publisher (English)",
    "publisher.ta": "Publisher (Tamil)",
    "original_price": "Original Price",
    "new_arrival": "New Arrival",
    "ratings.average": "Average Rating",
    "ratings.count": "Total Reviews",
    "created_at": "Created Date",
    "updated_at": "Updated Date",
}

BOOLEAN_FIELDS = {"featured", "bestseller", "new_arrival"}


def header_label(field: str) -> str:
    return HEADER_LABELS.get(field, field[:1].upper() + field[1:])


def nested_value(doc: Dict[str, Any], path: str) -> Any:
    current: Any = doc
    for key in path.split("."):
        if not isinstance(current, dict) or current.get(key) is None:
            return ""
        current = current[key]
    return current


def format_value(field: str, value: Any) -> Any:
    if field in BOOLEAN_FIELDS:
        return "Yes" if value else "No"
    if isinstance(value, (datetime, date)):
        return value.date().isoformat() if isinstance(value, datetime) else value.isoformat()
    if field == "ratings.average":
        return round(float(value), 1) if value else 0
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    return value


def books_to_csv(books: Iterable[Dict[str, Any]], fields: List[str] = None) -> str:
    """CSV text with a UTF-8 BOM so spreadsheet tools pick up Tamil script."""
    fields = fields or DEFAULT_BOOK_FIELDS
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([header_label(f) for f in fields])
    for book in books:
        writer.writerow([format_value(f, nested_value(book, f)) for f in fields])
    return "\ufeff" + buffer.getvalue()
