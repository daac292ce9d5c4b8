import os
import json
import logging
import re
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from bson import ObjectId
from fastapi import Body, Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel, EmailStr, Field, ValidationError
from pymongo.errors import DuplicateKeyError
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import create_access_token, get_current_user, get_optional_user, has_role, hash_password, require_admin, verify_password
from catalog import CATALOG, IMAGE_SUMMARY_FIELDS, add_image, build_filter, refresh_image_summary, set_primary_image
from config import LOG_LEVEL, UPLOAD_ROOT, is_production
from database import create_document, db, ensure_indexes, get_documents, serialize
from exports import DEFAULT_BOOK_FIELDS, books_to_csv
from files import delete_files, list_files, module_limits, store_module_files, store_transaction_proof, transaction_max_bytes
from forms import FORMS_MODULE, create_form, delete_form, is_open, public_form, review_response, submit_response, update_form
from localization import localize
from orders import (
    calculate_totals,
    change_status,
    ensure_deletable,
    generate_order_number,
    new_order,
    order_stats,
    update_shipping,
    verify_payment,
    with_extras,
)
from pagination import paginate
from payment_settings import active_payment_methods, find_active_method, general, get_settings, update_settings
from schemas import Applicant, Book, CatalogImage, Project, WebsiteContent

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("tls")

Lang = Literal["en", "ta"]
WEBSITE_CONTENT_BILINGUAL = ("title", "content", "subtitle", "button_text")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        try:
            ensure_indexes(db)
        except Exception as e:
            logger.warning("Could not ensure indexes: %s", e)
    yield


app = FastAPI(title="Tamil Literature Society API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Errors

def _error(status_code: int, message: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _validation_message(errors) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", "Invalid value"))
    return "; ".join(parts) or "Invalid request"


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, exc.detail)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return _error(400, _validation_message(exc.errors()))


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError):
    return _error(400, _validation_message(exc.errors()))


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return _error(400, "A record with the same unique key already exists")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error" if is_production() else str(exc))


# Helpers

def _db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def _collection(name: str):
    return _db()[name]


def _oid(value: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail="Invalid id")
    return ObjectId(value)


def _find_or_404(collection_name: str, doc_id: str, label: str) -> dict:
    doc = _collection(collection_name).find_one({"_id": _oid(doc_id)})
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


def _strip_meta(doc: dict) -> dict:
    return {k: v for k, v in doc.items() if k not in ("_id", "created_at", "updated_at")}


def _book_price(book: dict) -> float:
    return float(book.get("discounted_price") or book.get("price") or 0)


def _book_title(book: dict) -> str:
    title = book.get("title")
    if isinstance(title, dict):
        return title.get("en") or ""
    return title or ""


@app.get("/")
def read_root():
    return {"message": "Tamil Literature Society API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = db.name if hasattr(db, 'name') else "❌ Unknown"
            response["connection_status"] = "Connected"
            try:
                response["collections"] = db.list_collection_names()
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"

    return response


# Auth

class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginIn(BaseModel):
    email: EmailStr
    password: str


@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterIn):
    users = _collection("user")
    email = payload.email.lower()
    if users.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    uid = create_document("user", {
        "name": payload.name,
        "email": email,
        "password_hash": hash_password(payload.password),
        "role": "user",
        "is_active": True,
    })
    logger.info("Registered user %s", email)
    return {"success": True, "data": {"id": uid, "email": email, "name": payload.name, "role": "user"}}


@app.post("/api/auth/login")
def login(payload: LoginIn):
    user = _collection("user").find_one({"email": payload.email.lower()})
    if not user or not user.get("is_active", True) or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_access_token(user)
    return {
        "success": True,
        "data": {
            "token": token,
            "user": {"id": str(user["_id"]), "email": user["email"], "name": user.get("name"), "role": user.get("role", "user")},
        },
    }


@app.get("/api/auth/me")
def me(user: dict = Depends(get_current_user)):
    return {"success": True, "data": user}


# Catalog

def _list_catalog(kind: str, params: Dict[str, Optional[str]], q: Optional[str], lang: Optional[str],
                  page: int, limit: int, sort: Optional[str]):
    entry = CATALOG[kind]
    query = build_filter(entry, params, q)
    docs, pagination = paginate(_collection(entry["collection"]), query, page, limit, sort)
    data = [localize(serialize(d), entry["bilingual"], lang) for d in docs]
    return {"success": True, "count": len(data), "pagination": pagination, "data": data}


def _get_catalog(kind: str, item_id: str, lang: Optional[str]):
    entry = CATALOG[kind]
    doc = _find_or_404(entry["collection"], item_id, entry["label"])
    return {"success": True, "data": localize(serialize(doc), entry["bilingual"], lang)}


def _update_catalog(kind: str, model, item_id: str, body: Dict[str, Any]):
    entry = CATALOG[kind]
    existing = _find_or_404(entry["collection"], item_id, entry["label"])
    if entry["images"]:
        body = {k: v for k, v in body.items() if k not in IMAGE_SUMMARY_FIELDS}
    validated = model(**{**_strip_meta(existing), **body}).model_dump()
    if entry["images"]:
        for field in IMAGE_SUMMARY_FIELDS:
            validated.pop(field, None)
    validated["updated_at"] = datetime.now(timezone.utc)
    _collection(entry["collection"]).update_one({"_id": existing["_id"]}, {"$set": validated})
    return {"success": True, "data": serialize(_collection(entry["collection"]).find_one({"_id": existing["_id"]}))}


@app.get("/api/projects")
def list_projects(
    q: Optional[str] = None,
    bureau: Optional[str] = None,
    status: Optional[str] = None,
    type: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    lang: Optional[Lang] = None,
):
    return _list_catalog("projects", {"bureau": bureau, "status": status, "type": type}, q, lang, page, limit, sort)


@app.post("/api/projects", status_code=201)
def create_project(payload: Project, admin: dict = Depends(require_admin)):
    projects = _collection("project")
    if projects.find_one({"slug": payload.slug.lower()}):
        raise HTTPException(status_code=400, detail="A project with this slug already exists")
    data = payload.model_dump()
    data["slug"] = payload.slug.lower()
    pid = create_document("project", data)
    logger.info("Project %s created by %s", pid, admin["email"])
    return {"success": True, "data": serialize(projects.find_one({"_id": ObjectId(pid)}))}


@app.get("/api/projects/{project_id}")
def get_project(project_id: str, lang: Optional[Lang] = None):
    return _get_catalog("projects", project_id, lang)


@app.put("/api/projects/{project_id}")
def update_project(project_id: str, body: Dict[str, Any] = Body(...), admin: dict = Depends(require_admin)):
    if "slug" in body:
        body["slug"] = str(body["slug"]).lower()
        clash = _collection("project").find_one({"slug": body["slug"], "_id": {"$ne": _oid(project_id)}})
        if clash:
            raise HTTPException(status_code=400, detail="A project with this slug already exists")
    return _update_catalog("projects", Project, project_id, body)


@app.delete("/api/projects/{project_id}")
def delete_project(project_id: str, admin: dict = Depends(require_admin)):
    project = _find_or_404("project", project_id, "Project")
    _collection("project").delete_one({"_id": project["_id"]})
    removed = _collection("projectimage").delete_many({"parent_id": str(project["_id"])}).deleted_count
    logger.info("Project %s deleted by %s (%d images)", project_id, admin["email"], removed)
    return {"success": True, "data": {}}


@app.get("/api/activities")
def list_activities(
    q: Optional[str] = None,
    bureau: Optional[str] = None,
    status: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    lang: Optional[Lang] = None,
):
    return _list_catalog("activities", {"bureau": bureau, "status": status}, q, lang, page, limit, sort)


@app.get("/api/activities/{activity_id}")
def get_activity(activity_id: str, lang: Optional[Lang] = None):
    return _get_catalog("activities", activity_id, lang)


@app.get("/api/initiatives")
def list_initiatives(
    q: Optional[str] = None,
    bureau: Optional[str] = None,
    status: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    lang: Optional[Lang] = None,
):
    return _list_catalog("initiatives", {"bureau": bureau, "status": status}, q, lang, page, limit, sort)


@app.get("/api/initiatives/{initiative_id}")
def get_initiative(initiative_id: str, lang: Optional[Lang] = None):
    return _get_catalog("initiatives", initiative_id, lang)


@app.get("/api/books")
def list_books(
    q: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    featured: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    lang: Optional[Lang] = None,
):
    return _list_catalog("books", {"category": category, "status": status, "featured": featured}, q, lang, page, limit, sort)


@app.post("/api/books", status_code=201)
def create_book(payload: Book, admin: dict = Depends(require_admin)):
    bid = create_document("book", payload)
    logger.info("Book %s created by %s", bid, admin["email"])
    return {"success": True, "data": serialize(_collection("book").find_one({"_id": ObjectId(bid)}))}


@app.get("/api/books/export")
def export_books(
    format: str = "csv",
    fields: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    admin: dict = Depends(require_admin),
):
    if format not in ("csv", "json"):
        raise HTTPException(status_code=400, detail="Unsupported export format. Use csv or json.")
    query = build_filter(CATALOG["books"], {"category": category, "status": status})
    books = get_documents("book", query)
    today = datetime.now(timezone.utc).date().isoformat()
    logger.info("Exporting %d books as %s for %s", len(books), format, admin["email"])

    if format == "csv":
        selected = [f.strip() for f in fields.split(",") if f.strip()] if fields else DEFAULT_BOOK_FIELDS
        return Response(
            content=books_to_csv(books, selected),
            media_type="text/csv; charset=utf-8",
            headers={
                "Content-Disposition": f'attachment; filename="books-export-{today}.csv"',
                "Cache-Control": "no-cache",
            },
        )

    return JSONResponse(
        content=jsonable_encoder({
            "success": True,
            "export_date": datetime.now(timezone.utc).isoformat(),
            "total_records": len(books),
            "filters": {"category": category, "status": status},
            "data": serialize(books),
        }),
        headers={"Content-Disposition": f'attachment; filename="books-export-{today}.json"', "Cache-Control": "no-cache"},
    )


@app.get("/api/books/{book_id}")
def get_book(book_id: str, lang: Optional[Lang] = None):
    return _get_catalog("books", book_id, lang)


@app.put("/api/books/{book_id}")
def update_book(book_id: str, body: Dict[str, Any] = Body(...), admin: dict = Depends(require_admin)):
    return _update_catalog("books", Book, book_id, body)


@app.delete("/api/books/{book_id}")
def delete_book(book_id: str, admin: dict = Depends(require_admin)):
    book = _find_or_404("book", book_id, "Book")
    _collection("book").delete_one({"_id": book["_id"]})
    logger.info("Book %s deleted by %s", book_id, admin["email"])
    return {"success": True, "data": {}}


@app.get("/api/ebooks")
def list_ebooks(
    q: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    featured: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    lang: Optional[Lang] = None,
):
    return _list_catalog("ebooks", {"category": category, "status": status, "featured": featured}, q, lang, page, limit, sort)


@app.get("/api/ebooks/{ebook_id}")
def get_ebook(ebook_id: str, lang: Optional[Lang] = None):
    return _get_catalog("ebooks", ebook_id, lang)


@app.get("/api/posters")
def list_posters(
    q: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    lang: Optional[Lang] = None,
):
    return _list_catalog("posters", {"category": category, "status": status}, q, lang, page, limit, sort)


@app.get("/api/posters/{poster_id}")
def get_poster(poster_id: str, lang: Optional[Lang] = None):
    return _get_catalog("posters", poster_id, lang)


# Images

ImageParent = Literal["projects", "activities", "initiatives"]


class ImageIn(BaseModel):
    file_path: str = Field(..., min_length=1)
    is_primary: bool = False
    sort_order: int = 0


@app.get("/api/{kind}/{parent_id}/images")
def list_images(kind: ImageParent, parent_id: str):
    entry = CATALOG[kind]
    parent = _find_or_404(entry["collection"], parent_id, entry["label"])
    images = _collection(entry["images"]).find({"parent_id": str(parent["_id"])}).sort("sort_order", 1)
    return {"success": True, "data": [serialize(i) for i in images]}


@app.post("/api/{kind}/{parent_id}/images", status_code=201)
def create_image(kind: ImageParent, parent_id: str, payload: ImageIn, admin: dict = Depends(require_admin)):
    entry = CATALOG[kind]
    parent = _find_or_404(entry["collection"], parent_id, entry["label"])
    image = CatalogImage(parent_id=str(parent["_id"]), **payload.model_dump())
    image_id = add_image(_db(), entry, parent["_id"], image)
    return {"success": True, "data": serialize(_collection(entry["images"]).find_one({"_id": ObjectId(image_id)}))}


@app.put("/api/{kind}/{parent_id}/images/{image_id}/primary")
def make_primary_image(kind: ImageParent, parent_id: str, image_id: str, admin: dict = Depends(require_admin)):
    entry = CATALOG[kind]
    parent = _find_or_404(entry["collection"], parent_id, entry["label"])
    image = _collection(entry["images"]).find_one({"_id": _oid(image_id), "parent_id": str(parent["_id"])})
    if not image:
        raise HTTPException(status_code=404, detail="Image not found")
    set_primary_image(_db(), entry, parent["_id"], image["_id"])
    return {"success": True, "data": serialize(_collection(entry["images"]).find_one({"_id": image["_id"]}))}


@app.delete("/api/{kind}/{parent_id}/images/{image_id}")
def delete_image(kind: ImageParent, parent_id: str, image_id: str, admin: dict = Depends(require_admin)):
    entry = CATALOG[kind]
    parent = _find_or_404(entry["collection"], parent_id, entry["label"])
    result = _collection(entry["images"]).delete_one({"_id": _oid(image_id), "parent_id": str(parent["_id"])})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Image not found")
    refresh_image_summary(_db(), entry, parent["_id"])
    return {"success": True, "data": {}}


# Website content

@app.get("/api/website-content")
def list_website_content(
    page: Optional[str] = None,
    section_key: Optional[str] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    sort: Optional[str] = "order",
    page_number: int = Query(1, ge=1, description="Result page; `page` filters by site page here"),
    limit: int = Query(50, ge=1, le=100),
    lang: Optional[Lang] = None,
):
    query: Dict[str, Any] = {}
    if page:
        query["page"] = page
    if section_key:
        query["section_key"] = section_key
    if is_active is not None:
        query["is_active"] = is_active
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"section_key": pattern}, {"section": pattern}, {"title.en": pattern}, {"title.ta": pattern}]
    docs, pagination = paginate(_collection("websitecontent"), query, page_number, limit, sort)
    data = [localize(serialize(d), WEBSITE_CONTENT_BILINGUAL, lang) for d in docs]
    return {"success": True, "count": len(data), "pagination": pagination, "data": data}


@app.get("/api/website-content/pages/{page}")
def get_page_content(page: str, lang: Optional[Lang] = None):
    docs = _collection("websitecontent").find({"page": page, "is_active": True, "is_visible": True}).sort("order", 1)
    return {"success": True, "data": [localize(serialize(d), WEBSITE_CONTENT_BILINGUAL, lang) for d in docs]}


@app.post("/api/website-content", status_code=201)
def create_website_content(payload: WebsiteContent, admin: dict = Depends(require_admin)):
    contents = _collection("websitecontent")
    if contents.find_one({"page": payload.page, "section_key": payload.section_key}):
        raise HTTPException(status_code=400, detail="Content for this page and section key already exists")
    cid = create_document("websitecontent", payload)
    logger.info("Website content %s/%s created by %s", payload.page, payload.section_key, admin["email"])
    return {"success": True, "data": serialize(contents.find_one({"_id": ObjectId(cid)}))}


@app.put("/api/website-content/{content_id}")
def update_website_content(content_id: str, body: Dict[str, Any] = Body(...), admin: dict = Depends(require_admin)):
    contents = _collection("websitecontent")
    existing = _find_or_404("websitecontent", content_id, "Content")
    merged = WebsiteContent(**{**_strip_meta(existing), **body}).model_dump()
    clash = contents.find_one({"page": merged["page"], "section_key": merged["section_key"], "_id": {"$ne": existing["_id"]}})
    if clash:
        raise HTTPException(status_code=400, detail="Content for this page and section key already exists")
    merged["version"] = int(existing.get("version") or 1) + 1
    merged["updated_at"] = datetime.now(timezone.utc)
    contents.update_one({"_id": existing["_id"]}, {"$set": merged})
    return {"success": True, "data": serialize(contents.find_one({"_id": existing["_id"]}))}


@app.delete("/api/website-content/{content_id}")
def delete_website_content(content_id: str, admin: dict = Depends(require_admin)):
    existing = _find_or_404("websitecontent", content_id, "Content")
    if existing.get("is_required"):
        raise HTTPException(status_code=400, detail="Required content cannot be deleted")
    _collection("websitecontent").delete_one({"_id": existing["_id"]})
    logger.info("Website content %s deleted by %s", content_id, admin["email"])
    return {"success": True, "data": {}}


# Payment settings

class PaymentSettingsUpdate(BaseModel):
    epay: Optional[Dict[str, Any]] = None
    fbx: Optional[Dict[str, Any]] = None
    general: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


@app.get("/api/payment-settings")
def get_payment_settings():
    settings = get_settings(_db())
    return {
        "success": True,
        "data": {
            "methods": active_payment_methods(settings),
            "general": general(settings),
            "is_active": settings.get("is_active", True),
        },
    }


@app.put("/api/payment-settings")
def put_payment_settings(payload: PaymentSettingsUpdate, admin: dict = Depends(require_admin)):
    settings = update_settings(_db(), payload.model_dump())
    return {"success": True, "data": serialize(settings)}


# Uploads

@app.post("/api/upload-transaction")
async def upload_transaction(transaction_proof: UploadFile = File(...), user: dict = Depends(get_current_user)):
    settings = get_settings(_db())
    # read at most one byte past the limit
    data = await transaction_proof.read(transaction_max_bytes(general(settings)) + 1)
    stored = store_transaction_proof(
        UPLOAD_ROOT, transaction_proof.filename, transaction_proof.content_type, data, general(settings)
    )
    return {"success": True, "data": stored, "message": "Transaction proof uploaded successfully"}


@app.post("/api/upload/{module}", status_code=201)
async def upload_module_files(
    module: str,
    files: List[UploadFile] = File(...),
    record_id: Optional[str] = Form(None),
    admin: dict = Depends(require_admin),
):
    limit = module_limits(module)["max_size"]
    record_id = record_id or uuid.uuid4().hex
    uploads = [(f.filename, f.content_type, await f.read(limit + 1)) for f in files]
    stored, errors = store_module_files(UPLOAD_ROOT, module, record_id, uploads)
    message = f"{len(stored)} files uploaded successfully" + (f", {len(errors)} failed" if errors else "")
    if not stored:
        return JSONResponse(status_code=400, content={"success": False, "error": message, "errors": errors})
    logger.info("%s uploaded %d %s files for %s", admin["email"], len(stored), module, record_id)
    return {"success": True, "module": module, "record_id": record_id, "data": stored, "errors": errors, "message": message}


class FileRef(BaseModel):
    module: str
    record_id: str
    filename: str


class FileDeleteRequest(BaseModel):
    files: List[FileRef]


@app.get("/api/admin/files")
def admin_list_files(module: Optional[str] = None, record_id: Optional[str] = None, admin: dict = Depends(require_admin)):
    found = list_files(UPLOAD_ROOT, module, record_id)
    return {
        "success": True,
        "files": found,
        "count": len(found),
        "modules": sorted({f["module"] for f in found}),
    }


@app.delete("/api/admin/files")
def admin_delete_files(payload: FileDeleteRequest, admin: dict = Depends(require_admin)):
    results = delete_files(UPLOAD_ROOT, [f.model_dump() for f in payload.files])
    ok = sum(1 for r in results if r["success"])
    failed = len(results) - ok
    message = f"{ok} files deleted successfully" + (f", {failed} failed" if failed else "")
    return {"success": ok > 0, "message": message, "results": results}


# Orders

class OrderBookIn(BaseModel):
    book_id: str
    quantity: int = Field(1, ge=1)


class OrderIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    books: List[OrderBookIn] = Field(default_factory=list)
    payment_method: Optional[str] = None
    transaction_proof: Optional[str] = None
    shipping_enabled: bool = False
    shipping_address: Optional[str] = None
    order_type: Literal["individual", "bulk"] = "individual"
    notes: Optional[str] = None


class VerifyPaymentIn(BaseModel):
    is_approved: bool
    notes: Optional[str] = None


class OrderUpdate(BaseModel):
    status: Optional[Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]] = None
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    shipping_status: Optional[Literal["pending", "processing", "shipped", "delivered"]] = None
    tracking_number: Optional[str] = None
    shipping_cost: Optional[float] = Field(None, ge=0)


def _order_out(order: dict) -> dict:
    return with_extras(serialize(order))


@app.post("/api/orders", status_code=201)
def create_order(payload: OrderIn, user: dict = Depends(get_current_user)):
    orders = _collection("order")

    if not payload.books:
        raise HTTPException(status_code=400, detail="At least one book is required")
    if payload.shipping_enabled and not (payload.shipping_address or "").strip():
        raise HTTPException(status_code=400, detail="Shipping address is required when shipping is enabled")
    if not payload.payment_method:
        raise HTTPException(status_code=400, detail="Payment method is required")
    if not (payload.transaction_proof or "").strip():
        raise HTTPException(status_code=400, detail="Transaction proof is required")

    settings = get_settings(_db())
    method = find_active_method(settings, payload.payment_method)
    if method is None:
        raise HTTPException(status_code=400, detail=f"Payment method {payload.payment_method} is not available")

    quantities: Dict[str, int] = {}
    for line in payload.books:
        quantities[line.book_id] = quantities.get(line.book_id, 0) + line.quantity
    if not all(ObjectId.is_valid(b) for b in quantities):
        raise HTTPException(status_code=400, detail="Some books are not available")
    found = {
        str(b["_id"]): b
        for b in _db()["book"].find({"_id": {"$in": [ObjectId(b) for b in quantities]}, "status": "active"})
    }
    if len(found) != len(quantities):
        raise HTTPException(status_code=400, detail="Some books are not available")

    lines = [
        {"book_id": book_id, "title": _book_title(found[book_id]), "quantity": qty, "price": _book_price(found[book_id])}
        for book_id, qty in quantities.items()
    ]
    order = new_order(
        order_number=generate_order_number(_db()),
        user={"name": payload.name.strip(), "email": payload.email.lower(), "phone": payload.phone.strip(), "user_id": user["id"]},
        lines=lines,
        payment_method=method,
        transaction_proof=payload.transaction_proof.strip(),
        shipping_enabled=payload.shipping_enabled,
        shipping_address=(payload.shipping_address or "").strip() or None,
        general_settings=general(settings),
        order_type=payload.order_type,
        notes=payload.notes or "",
    )
    oid = create_document("order", order)
    logger.info("Order %s created for %s (total %.2f)", order["order_number"], order["user"]["email"], order["totals"]["total"])
    return {"success": True, "data": _order_out(orders.find_one({"_id": ObjectId(oid)})), "message": "Order placed successfully"}


@app.get("/api/orders")
def list_orders(
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    payment_method: Optional[str] = None,
    order_type: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: dict = Depends(get_current_user),
):
    orders = _collection("order")
    is_admin = has_role(user, "admin")
    query: Dict[str, Any] = {} if is_admin else {"user.user_id": user["id"]}
    if status:
        query["status"] = status
    if payment_status:
        query["payment.status"] = payment_status
    if payment_method:
        query["payment.method"] = payment_method
    if order_type:
        query["order_type"] = order_type
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [
            {"order_number": pattern},
            {"user.name": pattern},
            {"user.email": pattern},
            {"user.phone": pattern},
        ]
    docs, pagination = paginate(orders, query, page, limit, sort)
    data = [_order_out(d) for d in docs]
    body = {"success": True, "count": len(data), "pagination": pagination, "data": data}
    if is_admin:
        body["stats"] = order_stats(orders)
    return body


@app.get("/api/order-tracking")
def track_order(order_number: str, email: str):
    order = _collection("order").find_one({"order_number": order_number.strip(), "user.email": email.strip().lower()})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    shipping = order.get("shipping") or {}
    return {
        "success": True,
        "data": serialize({
            "order_number": order["order_number"],
            "status": order.get("status"),
            "payment_status": (order.get("payment") or {}).get("status"),
            "shipping_status": shipping.get("status") if shipping.get("enabled") else None,
            "tracking_number": shipping.get("tracking_number"),
            "shipped_at": shipping.get("shipped_at"),
            "delivered_at": shipping.get("delivered_at"),
            "totals": order.get("totals"),
            "created_at": order.get("created_at"),
        }),
    }


@app.get("/api/orders/{order_id}")
@app.get("/api/purchased-books/{order_id}")
def get_order(order_id: str, admin: dict = Depends(require_admin)):
    return {"success": True, "data": _order_out(_find_or_404("order", order_id, "Order"))}


@app.get("/api/orders/{order_id}/proof")
def get_order_proof(order_id: str, admin: dict = Depends(require_admin)):
    order = _find_or_404("order", order_id, "Order")
    stored = (order.get("payment") or {}).get("file") or ""
    prefix = "/uploads/"
    relative = stored[len(prefix):] if stored.startswith(prefix) else ""
    path = os.path.normpath(os.path.join(UPLOAD_ROOT, relative)) if relative else ""
    root = os.path.normpath(UPLOAD_ROOT)
    if not path or not path.startswith(root + os.sep) or not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="Transaction proof not found")
    return FileResponse(path, filename=os.path.basename(path))


@app.post("/api/orders/{order_id}/verify")
def verify_order_payment(order_id: str, payload: VerifyPaymentIn, admin: dict = Depends(require_admin)):
    updated = verify_payment(_db(), _oid(order_id), payload.is_approved, payload.notes, admin["id"])
    return {
        "success": True,
        "message": f"Payment {'approved' if payload.is_approved else 'rejected'} successfully",
        "data": _order_out(updated),
    }


@app.put("/api/orders/{order_id}")
@app.put("/api/purchased-books/{order_id}")
def update_order(order_id: str, payload: OrderUpdate, admin: dict = Depends(require_admin)):
    orders = _collection("order")
    order = _find_or_404("order", order_id, "Order")
    now = datetime.now(timezone.utc)

    if payload.status is not None:
        change_status(order, payload.status, payload.notes, admin["id"], now)
    update_shipping(order, now, payload.shipping_status, payload.tracking_number, payload.shipping_cost)
    if payload.notes is not None:
        order["notes"] = payload.notes
    if payload.admin_notes is not None:
        order["admin_notes"] = payload.admin_notes
    calculate_totals(order)

    orders.update_one(
        {"_id": order["_id"]},
        {"$set": {
            "status": order["status"],
            "shipping": order["shipping"],
            "books": order["books"],
            "totals": order["totals"],
            "notes": order.get("notes", ""),
            "admin_notes": order.get("admin_notes", ""),
            "timeline": order.get("timeline", []),
            "updated_at": now,
        }},
    )
    logger.info("Order %s updated by %s", order.get("order_number"), admin["email"])
    return {"success": True, "message": "Order updated successfully", "data": _order_out(orders.find_one({"_id": order["_id"]}))}


@app.delete("/api/orders/{order_id}")
@app.delete("/api/purchased-books/{order_id}")
def delete_order(order_id: str, admin: dict = Depends(require_admin)):
    order = _find_or_404("order", order_id, "Order")
    ensure_deletable(order)
    _collection("order").delete_one({"_id": order["_id"]})
    logger.info("Order %s deleted by %s", order.get("order_number"), admin["email"])
    return {"success": True, "message": "Order deleted successfully"}


# Cart

class CartItemIn(BaseModel):
    book_id: str
    quantity: int = Field(1, ge=1)


def _save_cart(user_id: str, items: List[dict]) -> dict:
    carts = _collection("cart")
    now = datetime.now(timezone.utc)
    subtotal = round(sum(i["price"] * i["quantity"] for i in items), 2)
    carts.update_one(
        {"user_id": user_id},
        {"$set": {"items": items, "subtotal": subtotal, "updated_at": now}, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )
    return carts.find_one({"user_id": user_id})


@app.get("/api/cart")
def get_cart(user: dict = Depends(get_current_user)):
    cart = _collection("cart").find_one({"user_id": user["id"]})
    if not cart:
        return {"success": True, "data": {"user_id": user["id"], "items": [], "subtotal": 0.0}}
    return {"success": True, "data": serialize(cart)}


@app.post("/api/cart/items")
def add_cart_item(payload: CartItemIn, user: dict = Depends(get_current_user)):
    book = _collection("book").find_one({"_id": _oid(payload.book_id), "status": "active"})
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    cart = _collection("cart").find_one({"user_id": user["id"]}) or {}
    items = list(cart.get("items", []))
    for item in items:
        if item["book_id"] == payload.book_id:
            item["quantity"] += payload.quantity
            item["price"] = _book_price(book)
            break
    else:
        items.append({"book_id": payload.book_id, "title": _book_title(book), "price": _book_price(book), "quantity": payload.quantity})
    return {"success": True, "data": serialize(_save_cart(user["id"], items))}


@app.delete("/api/cart/items/{book_id}")
def remove_cart_item(book_id: str, user: dict = Depends(get_current_user)):
    cart = _collection("cart").find_one({"user_id": user["id"]})
    items = [i for i in (cart or {}).get("items", []) if i["book_id"] != book_id]
    if cart is None or len(items) == len(cart.get("items", [])):
        raise HTTPException(status_code=404, detail="Item not in cart")
    return {"success": True, "data": serialize(_save_cart(user["id"], items))}


@app.delete("/api/cart")
def clear_cart(user: dict = Depends(get_current_user)):
    _collection("cart").delete_one({"user_id": user["id"]})
    return {"success": True, "data": {"user_id": user["id"], "items": [], "subtotal": 0.0}}


# Recruitment forms

FORM_BILINGUAL = ("title", "description")
FormKind = Literal["project", "activity", "initiative"]


class ResponseReviewIn(BaseModel):
    status: Optional[Literal["pending", "reviewed", "approved", "rejected", "archived"]] = None
    admin_notes: Optional[str] = None


@app.get("/api/recruitment/active")
def list_active_recruitment(
    type: Optional[FormKind] = None,
    linked_id: Optional[str] = None,
    role: Optional[str] = None,
    lang: Optional[Lang] = None,
):
    query: Dict[str, Any] = {"status": "active"}
    if type:
        query["type"] = type
    if linked_id:
        query["linked_id"] = linked_id
    if role:
        query["role"] = role
    now = datetime.now(timezone.utc)
    docs = _collection("form").find(query).sort("start_date", -1)
    data = [localize(serialize(public_form(d, now)), FORM_BILINGUAL, lang) for d in docs if is_open(d, now)]
    return {"success": True, "count": len(data), "data": data}


@app.get("/api/recruitment/{form_id}")
def get_recruitment_form(form_id: str, lang: Optional[Lang] = None):
    form = _find_or_404("form", form_id, "Form")
    if form.get("status") == "draft":
        raise HTTPException(status_code=404, detail="Form not found")
    return {"success": True, "data": localize(serialize(public_form(form)), FORM_BILINGUAL, lang)}


@app.post("/api/recruitment/{form_id}/responses", status_code=201)
async def submit_recruitment_response(form_id: str, request: Request, user: Optional[dict] = Depends(get_optional_user)):
    form = _find_or_404("form", form_id, "Form")
    payload = await request.form()
    try:
        answers = json.loads(payload.get("answers") or "{}")
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Answers must be a JSON object")
    if not isinstance(answers, dict):
        raise HTTPException(status_code=400, detail="Answers must be a JSON object")

    account = user or {}
    applicant = Applicant(
        name=payload.get("name") or account.get("name") or "",
        email=payload.get("email") or account.get("email") or "",
        phone=payload.get("phone") or None,
        user_id=account.get("id"),
    )
    limit = module_limits(FORMS_MODULE)["max_size"]
    uploads = []
    for key, value in payload.multi_items():
        if key.startswith("file_") and isinstance(value, StarletteUploadFile) and value.filename:
            uploads.append((key[len("file_"):], value.filename, value.content_type, await value.read(limit + 1)))

    response_id, reference = submit_response(_db(), UPLOAD_ROOT, form, applicant, answers, uploads)
    return {
        "success": True,
        "data": {"id": response_id, "reference_number": reference},
        "message": "Application submitted successfully",
    }


@app.get("/api/forms")
def list_forms(
    type: Optional[FormKind] = None,
    linked_id: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(require_admin),
):
    query = {k: v for k, v in {"type": type, "linked_id": linked_id, "role": role, "status": status}.items() if v}
    docs, pagination = paginate(_collection("form"), query, page, limit, sort)
    data = [serialize(d) for d in docs]
    return {"success": True, "count": len(data), "pagination": pagination, "data": data}


@app.post("/api/forms", status_code=201)
def create_recruitment_form(body: Dict[str, Any] = Body(...), admin: dict = Depends(require_admin)):
    form_id = create_form(_db(), body, admin["id"])
    return {"success": True, "data": serialize(_collection("form").find_one({"_id": ObjectId(form_id)}))}


@app.get("/api/forms/{form_id}")
def get_form(form_id: str, admin: dict = Depends(require_admin)):
    return {"success": True, "data": serialize(_find_or_404("form", form_id, "Form"))}


@app.put("/api/forms/{form_id}")
def update_recruitment_form(form_id: str, body: Dict[str, Any] = Body(...), admin: dict = Depends(require_admin)):
    form = _find_or_404("form", form_id, "Form")
    update_form(_db(), form, body)
    return {"success": True, "data": serialize(_collection("form").find_one({"_id": form["_id"]}))}


@app.delete("/api/forms/{form_id}")
def delete_recruitment_form(form_id: str, admin: dict = Depends(require_admin)):
    form = _find_or_404("form", form_id, "Form")
    delete_form(_db(), form)
    logger.info("Form %s deleted by %s", form_id, admin["email"])
    return {"success": True, "data": {}}


@app.get("/api/forms/{form_id}/responses")
def list_form_responses(
    form_id: str,
    status: Optional[str] = None,
    sort: Optional[str] = "-submitted_at",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(require_admin),
):
    form = _find_or_404("form", form_id, "Form")
    query: Dict[str, Any] = {"form_id": str(form["_id"])}
    if status:
        query["status"] = status
    docs, pagination = paginate(_collection("formresponse"), query, page, limit, sort)
    data = [serialize(d) for d in docs]
    return {"success": True, "count": len(data), "pagination": pagination, "data": data}


@app.put("/api/form-responses/{response_id}")
def review_form_response(response_id: str, payload: ResponseReviewIn, admin: dict = Depends(require_admin)):
    response = _find_or_404("formresponse", response_id, "Form response")
    review_response(_db(), response, payload.status, payload.admin_notes, admin["id"])
    return {"success": True, "data": serialize(_collection("formresponse").find_one({"_id": response["_id"]}))}


# Admin stats

@app.get("/api/admin/stats")
def admin_stats(admin: dict = Depends(require_admin)):
    counts = {kind: _collection(entry["collection"]).count_documents({}) for kind, entry in CATALOG.items()}
    counts["users"] = _collection("user").count_documents({})
    return {"success": True, "data": {"counts": counts, "orders": order_stats(_collection("order"))}}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
