"""
Catalog registry and shared query helpers.

Every browsable resource (projects, activities, initiatives, books, ebooks,
posters) is described by one entry: its collection, which fields are
bilingual, which query parameters filter by equality and which fields the
free-text search looks at.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId

from database import create_document

logger = logging.getLogger(__name__)

CATALOG: Dict[str, Dict[str, Any]] = {
    "projects": {
        "collection": "project",
        "label": "Project",
        "bilingual": ("title", "description", "short_description", "goals", "requirements", "benefits", "director"),
        "filters": ("bureau", "status", "type"),
        "search": ("title", "description"),
        "images": "projectimage",
    },
    "activities": {
        "collection": "activity",
        "label": "Activity",
        "bilingual": ("title", "description", "short_description", "goals", "achievements"),
        "filters": ("bureau", "status"),
        "search": ("title", "description"),
        "images": "activityimage",
    },
    "initiatives": {
        "collection": "initiative",
        "label": "Initiative",
        "bilingual": ("title", "description", "short_description", "goals", "impact"),
        "filters": ("bureau", "status"),
        "search": ("title", "description"),
        "images": "initiativeimage",
    },
    "books": {
        "collection": "book",
        "label": "Book",
        "bilingual": ("title", "author", "description", "publisher"),
        "filters": ("category", "status", "featured"),
        "search": ("title", "author"),
        "images": None,
    },
    "ebooks": {
        "collection": "ebook",
        "label": "Ebook",
        "bilingual": ("title", "author", "description"),
        "filters": ("category", "status", "featured"),
        "search": ("title", "author"),
        "images": None,
    },
    "posters": {
        "collection": "poster",
        "label": "Poster",
        "bilingual": ("title", "description"),
        "filters": ("category", "status"),
        "search": ("title", "description"),
        "images": None,
    },
}

BOOLEAN_FILTERS = {"featured"}

# Kept on the parent by refresh_image_summary only
IMAGE_SUMMARY_FIELDS = ("primary_image_id", "primary_image_url", "images_count")


def text_search(fields, q: str) -> Dict[str, Any]:
    pattern = {"$regex": re.escape(q), "$options": "i"}
    clauses = []
    for field in fields:
        clauses.append({f"{field}.en": pattern})
        clauses.append({f"{field}.ta": pattern})
    return {"$or": clauses}


def build_filter(entry: Dict[str, Any], params: Dict[str, Optional[str]], q: Optional[str] = None) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    for name in entry["filters"]:
        value = params.get(name)
        if value is None or value == "" or value == "all":
            continue
        if name in BOOLEAN_FILTERS:
            query[name] = str(value).lower() in ("1", "true", "yes")
        else:
            query[name] = value
    if q:
        query.update(text_search(entry["search"], q))
    return query


# Image side-tables

def refresh_image_summary(db, entry: Dict[str, Any], parent_oid) -> None:
    """Re-derive image flags and the parent's image summary.

    The parent's `primary_image_id` decides which image is primary. Every
    other image of the parent loses its `is_primary` flag, and the parent
    gets the primary's path and the image count.
    """
    images = db[entry["images"]]
    parents = db[entry["collection"]]
    parent_id = str(parent_oid)
    parent = parents.find_one({"_id": parent_oid}, {"primary_image_id": 1}) or {}
    primary = None
    if parent.get("primary_image_id") and ObjectId.is_valid(parent["primary_image_id"]):
        primary = images.find_one({"_id": ObjectId(parent["primary_image_id"]), "parent_id": parent_id})
    now = datetime.now(timezone.utc)

    images.update_many(
        {"parent_id": parent_id, "is_primary": True, "_id": {"$ne": primary["_id"] if primary else None}},
        {"$set": {"is_primary": False, "updated_at": now}},
    )
    if primary and not primary.get("is_primary"):
        images.update_one({"_id": primary["_id"]}, {"$set": {"is_primary": True, "updated_at": now}})
    parents.update_one(
        {"_id": parent_oid},
        {"$set": {
            "primary_image_id": str(primary["_id"]) if primary else None,
            "primary_image_url": primary["file_path"] if primary else None,
            "images_count": images.count_documents({"parent_id": parent_id}),
            "updated_at": now,
        }},
    )


def set_primary_image(db, entry: Dict[str, Any], parent_oid, image_oid) -> None:
    """Make one image the primary image of its parent.

    The choice is a single write on the parent document; the image flags are
    derived from it afterwards, so concurrent calls settle on the last write.
    """
    db[entry["collection"]].update_one({"_id": parent_oid}, {"$set": {"primary_image_id": str(image_oid)}})
    refresh_image_summary(db, entry, parent_oid)


def add_image(db, entry: Dict[str, Any], parent_oid, image) -> str:
    image_id = create_document(entry["images"], image)
    if image.is_primary:
        set_primary_image(db, entry, parent_oid, ObjectId(image_id))
    else:
        refresh_image_summary(db, entry, parent_oid)
    logger.info("Added %s image %s to %s", entry["label"].lower(), image_id, parent_oid)
    return image_id
