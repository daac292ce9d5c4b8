"""Local filesystem storage for uploads."""
import logging
import os
import re
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException

logger = logging.getLogger(__name__)

MB = 1024 * 1024

# Extension whitelist and size cap per upload module
MODULE_LIMITS: Dict[str, Dict[str, Any]] = {
    "books": {"types": (".jpg", ".jpeg", ".png", ".pdf"), "max_size": 20 * MB},
    "ebooks": {"types": (".pdf", ".epub"), "max_size": 50 * MB},
    "posters": {"types": (".jpg", ".jpeg", ".png", ".pdf"), "max_size": 20 * MB},
    "projects": {"types": (".jpg", ".jpeg", ".png", ".pdf"), "max_size": 20 * MB},
    "activities": {"types": (".jpg", ".jpeg", ".png", ".pdf"), "max_size": 20 * MB},
    "initiatives": {"types": (".jpg", ".jpeg", ".png", ".pdf"), "max_size": 20 * MB},
    "slideshow": {"types": (".jpg", ".jpeg", ".png", ".mp4"), "max_size": 100 * MB},
    "content": {"types": (".jpg", ".jpeg", ".png", ".svg", ".pdf"), "max_size": 10 * MB},
    "forms": {"types": (".pdf", ".doc", ".docx", ".jpg", ".jpeg", ".png"), "max_size": 10 * MB},
}
MODULES = tuple(MODULE_LIMITS)
TRANSACTIONS_DIR = "transactions"


def _safe_component(value: Optional[str]) -> bool:
    return bool(value) and value not in (".", "..") and os.sep not in value and "/" not in value and "\\" not in value


def transaction_max_bytes(general: Dict[str, Any]) -> int:
    return int(general.get("max_file_size") or 5) * MB


def store_transaction_proof(root: str, original_name: str, content_type: str, data: bytes, general: Dict[str, Any]) -> Dict[str, Any]:
    max_bytes = transaction_max_bytes(general)
    allowed = general.get("allowed_file_types") or []
    if not data:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if len(data) > max_bytes:
        raise HTTPException(status_code=400, detail="File size too large")
    if content_type not in allowed:
        raise HTTPException(status_code=400, detail=f"Invalid file type. Allowed types: {', '.join(allowed)}")

    directory = os.path.join(root, TRANSACTIONS_DIR)
    os.makedirs(directory, exist_ok=True)
    extension = os.path.splitext(original_name or "")[1].lower()
    filename = f"transaction_{int(time.time() * 1000)}_{secrets.token_hex(6)}{extension}"
    with open(os.path.join(directory, filename), "wb") as fh:
        fh.write(data)

    logger.info("Stored transaction proof %s (%d bytes)", filename, len(data))
    return {
        "filename": filename,
        "original_name": original_name,
        "size": len(data),
        "mimetype": content_type,
        "url": f"/uploads/{TRANSACTIONS_DIR}/{filename}",
        "uploaded_at": datetime.now(timezone.utc).isoformat(),
    }


def module_limits(module: str) -> Dict[str, Any]:
    limits = MODULE_LIMITS.get(module)
    if limits is None:
        raise HTTPException(status_code=400, detail=f"Unsupported module: {module}")
    return limits


def normalize_filename(name: Optional[str]) -> str:
    """Lowercase, spaces to underscores, keep ASCII letters, digits and Tamil."""
    stem, extension = os.path.splitext(os.path.basename(name or ""))
    stem = re.sub(r"[^a-zA-Z0-9\u0B80-\u0BFF\s_-]", "", stem)
    stem = re.sub(r"\s+", "_", stem.strip()).lower()
    return f"{stem or 'file'}{extension.lower()}"


def store_module_files(
    root: str,
    module: str,
    record_id: str,
    uploads: Iterable[Tuple[Optional[str], Optional[str], bytes]],
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Store `(name, content_type, data)` uploads under `<module>/<record_id>/`.

    Each file is checked on its own; rejected files are reported back instead
    of failing the whole batch.
    """
    limits = module_limits(module)
    if not _safe_component(record_id):
        raise HTTPException(status_code=400, detail="Invalid record id")
    directory = os.path.join(root, module, record_id)
    stored, errors = [], []
    for original_name, content_type, data in uploads:
        extension = os.path.splitext(original_name or "")[1].lower()
        if not data:
            errors.append({"filename": original_name, "error": "No file uploaded"})
            continue
        if extension not in limits["types"]:
            errors.append({"filename": original_name, "error": f"File type {extension or 'unknown'} not allowed for this module"})
            continue
        if len(data) > limits["max_size"]:
            errors.append({"filename": original_name, "error": f"File size exceeds limit of {limits['max_size'] // MB}MB"})
            continue

        os.makedirs(directory, exist_ok=True)
        filename = f"{int(time.time() * 1000)}-{secrets.token_hex(3)}_{normalize_filename(original_name)}"
        with open(os.path.join(directory, filename), "wb") as fh:
            fh.write(data)
        logger.info("Stored %s upload %s/%s (%d bytes)", module, record_id, filename, len(data))
        stored.append({
            "filename": filename,
            "original_name": original_name,
            "path": f"uploads/{module}/{record_id}/{filename}",
            "size": len(data),
            "type": content_type,
        })
    return stored, errors


def list_files(root: str, module: Optional[str] = None, record_id: Optional[str] = None) -> List[Dict[str, Any]]:
    found = []
    if not os.path.isdir(root):
        return found
    for module_dir in MODULES:
        if module and module != module_dir:
            continue
        module_path = os.path.join(root, module_dir)
        if not os.path.isdir(module_path):
            continue
        for record_dir in sorted(os.listdir(module_path)):
            if record_id and record_id != record_dir:
                continue
            record_path = os.path.join(module_path, record_dir)
            if not os.path.isdir(record_path):
                continue
            for filename in sorted(os.listdir(record_path)):
                file_path = os.path.join(record_path, filename)
                if not os.path.isfile(file_path):
                    continue
                stats = os.stat(file_path)
                found.append({
                    "filename": filename,
                    "original_name": filename.split("_", 1)[1] if "_" in filename else filename,
                    "path": f"uploads/{module_dir}/{record_dir}/{filename}",
                    "module": module_dir,
                    "record_id": record_dir,
                    "size": stats.st_size,
                    "modified_at": datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
                    "type": os.path.splitext(filename)[1].lower(),
                })
    found.sort(key=lambda f: f["modified_at"], reverse=True)
    return found


def delete_files(root: str, files: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Delete each file independently and report a result per file."""
    results = []
    for item in files:
        filename = item.get("filename")
        module = item.get("module")
        record_id = item.get("record_id")
        if module not in MODULES or not _safe_component(record_id) or not _safe_component(filename):
            results.append({"filename": filename, "success": False, "error": "Invalid file reference"})
            continue
        file_path = os.path.join(root, module, record_id, filename)
        if not os.path.isfile(file_path):
            results.append({"filename": filename, "success": False, "error": "File not found"})
            continue
        try:
            os.remove(file_path)
        except OSError as e:
            logger.warning("Could not delete %s: %s", file_path, e)
            results.append({"filename": filename, "success": False, "error": str(e)})
            continue
        logger.info("Deleted upload %s/%s/%s", module, record_id, filename)
        results.append({"filename": filename, "success": True})
    return results
