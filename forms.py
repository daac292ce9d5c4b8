"""
Recruitment forms.

A form belongs to a project, activity or initiative and recruits crew,
volunteers or participants for it. Responses are accepted only while the
form is active and inside its date window. Capacity is reserved with one
conditional `$inc` on the form, so `max_applications` holds under
concurrent submissions.
"""
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from fastapi import HTTPException
from pymongo import ReturnDocument

from database import as_utc, create_document
from files import delete_files, store_module_files
from schemas import Applicant, Form, FormAttachment, FormResponse

logger = logging.getLogger(__name__)

FORMS_MODULE = "forms"
CTA_TEXT = {"crew": "Work With Us", "volunteer": "Volunteering", "participant": "Participate"}
PUBLIC_FIELDS = (
    "_id", "title", "slug", "type", "linked_id", "role", "description", "fields",
    "start_date", "end_date", "status", "settings", "response_count",
)
# Set by the service, never taken from a request body
SYSTEM_FIELDS = ("_id", "slug", "response_count", "created_by", "created_at", "updated_at")
CHOICE_TYPES = ("select", "radio")


def is_open(form: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    start = as_utc(form.get("start_date"))
    end = as_utc(form.get("end_date"))
    return form.get("status") == "active" and start is not None and end is not None and start <= now <= end


def public_form(form: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    out = {key: form.get(key) for key in PUBLIC_FIELDS}
    out["is_open"] = is_open(form, now)
    out["cta_text"] = CTA_TEXT.get(form.get("role"), "Apply")
    return out


def slugify(text: str) -> str:
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug or "form"


def unique_slug(db, title: str) -> str:
    base = slugify(title)
    slug, counter = base, 1
    while db["form"].find_one({"slug": slug}):
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def generate_reference_number(db, now: Optional[float] = None) -> str:
    seq = db["formsequence"].find_one_and_update(
        {"_id": "seq"},
        {"$inc": {"last_number": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    stamp = str(int((now if now is not None else time.time()) * 1000))[-6:]
    return f"FR{stamp}{seq.get('last_number', 1):04d}"


def create_form(db, body: Dict[str, Any], created_by: Optional[str]) -> str:
    fields = {k: v for k, v in body.items() if k not in SYSTEM_FIELDS}
    form = Form(**fields, created_by=created_by)
    data = form.model_dump()
    data["slug"] = unique_slug(db, form.title.en)
    form_id = create_document("form", data)
    logger.info("Form %s (%s) created by %s", form_id, data["slug"], created_by)
    return form_id


def update_form(db, form: Dict[str, Any], body: Dict[str, Any]) -> None:
    changes = {k: v for k, v in body.items() if k not in SYSTEM_FIELDS}
    current = {k: v for k, v in form.items() if k not in ("_id", "created_at", "updated_at")}
    merged = Form(**{**current, **changes}).model_dump()
    for key in SYSTEM_FIELDS:
        merged.pop(key, None)
    merged["updated_at"] = datetime.now(timezone.utc)
    db["form"].update_one({"_id": form["_id"]}, {"$set": merged})


def delete_form(db, form: Dict[str, Any]) -> None:
    count = db["formresponse"].count_documents({"form_id": str(form["_id"])})
    if count:
        raise HTTPException(status_code=400, detail=f"Cannot delete form with {count} responses. Archive it instead.")
    db["form"].delete_one({"_id": form["_id"]})


def _blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def check_answers(form: Dict[str, Any], answers: Dict[str, Any], file_field_ids: Set[str]) -> Dict[str, Any]:
    """Validate answers against the form's fields and keep only known ones."""
    cleaned: Dict[str, Any] = {}
    missing: List[str] = []
    for field in form.get("fields", []):
        kind, field_id, label = field["type"], field["id"], field["label"]
        if kind == "section-break":
            continue
        if kind == "file-upload":
            if field.get("required") and field_id not in file_field_ids:
                missing.append(label)
            continue
        value = answers.get(field_id)
        if _blank(value):
            if field.get("required"):
                missing.append(label)
            continue
        options = field.get("options") or []
        if kind in CHOICE_TYPES and options and value not in options:
            raise HTTPException(status_code=400, detail=f"Invalid option for {label}")
        if kind == "checkboxes":
            value = value if isinstance(value, list) else [value]
            if options and any(v not in options for v in value):
                raise HTTPException(status_code=400, detail=f"Invalid option for {label}")
        cleaned[field_id] = value
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")
    return cleaned


def _reserve_slot(db, form: Dict[str, Any]) -> bool:
    query: Dict[str, Any] = {"_id": form["_id"]}
    limit = (form.get("settings") or {}).get("max_applications")
    if limit:
        query["response_count"] = {"$lt": limit}
    return db["form"].find_one_and_update(query, {"$inc": {"response_count": 1}}) is not None


def _discard(upload_root: str, form_id: str, stored: Iterable[Dict[str, Any]]) -> None:
    delete_files(upload_root, [{"module": FORMS_MODULE, "record_id": form_id, "filename": s["filename"]} for s in stored])


def submit_response(
    db,
    upload_root: str,
    form: Dict[str, Any],
    applicant: Applicant,
    answers: Dict[str, Any],
    uploads: List[Tuple[str, Optional[str], Optional[str], bytes]],
    now: Optional[datetime] = None,
) -> Tuple[str, str]:
    """Store one response with its `(field_id, name, content_type, data)` uploads.

    Returns the response id and its reference number.
    """
    now = now or datetime.now(timezone.utc)
    form_id = str(form["_id"])
    settings = form.get("settings") or {}

    if not is_open(form, now):
        raise HTTPException(status_code=400, detail="This form is not currently accepting submissions")
    if settings.get("require_authentication", True) and not applicant.user_id:
        raise HTTPException(status_code=401, detail="This form requires authentication to submit")
    if not settings.get("allow_multiple_submissions") and applicant.user_id:
        if db["formresponse"].find_one({"form_id": form_id, "user.user_id": applicant.user_id}):
            raise HTTPException(status_code=400, detail="You have already submitted a response to this form")

    file_fields = {f["id"] for f in form.get("fields", []) if f["type"] == "file-upload"}
    for field_id, name, _, _ in uploads:
        if field_id not in file_fields:
            raise HTTPException(status_code=400, detail=f"Unexpected file {name} for field {field_id}")
    response_data = check_answers(form, answers, {u[0] for u in uploads})

    stored, errors = store_module_files(upload_root, FORMS_MODULE, form_id, [(name, ctype, data) for _, name, ctype, data in uploads])
    if errors:
        _discard(upload_root, form_id, stored)
        raise HTTPException(status_code=400, detail=f"{errors[0]['filename']}: {errors[0]['error']}")
    if not _reserve_slot(db, form):
        _discard(upload_root, form_id, stored)
        raise HTTPException(status_code=400, detail="This form has reached its maximum number of applications")

    attachments = [
        FormAttachment(field_id=field_id, original_name=name, path=s["path"], size=s["size"], type=s["type"])
        for (field_id, name, _, _), s in zip(uploads, stored)
    ]
    response = FormResponse(
        form_id=form_id,
        reference_number=generate_reference_number(db),
        user=applicant,
        response_data=response_data,
        attachments=attachments,
        submitted_at=now,
    )
    response_id = create_document("formresponse", response)
    logger.info("Response %s submitted to form %s by %s", response.reference_number, form_id, applicant.email)
    return response_id, response.reference_number


def review_response(db, response: Dict[str, Any], status: Optional[str], admin_notes: Optional[str], reviewer_id: Optional[str]) -> None:
    now = datetime.now(timezone.utc)
    changes: Dict[str, Any] = {}
    if admin_notes is not None:
        changes["admin_notes"] = admin_notes
    if status is not None and status != response.get("status"):
        changes.update({"status": status, "reviewed_by": reviewer_id, "reviewed_at": now})
    if changes:
        changes["updated_at"] = now
        db["formresponse"].update_one({"_id": response["_id"]}, {"$set": changes})
