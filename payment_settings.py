"""
Singleton payment configuration.

There is at most one document in the `paymentsettings` collection; the
first read creates it with the defaults from `schemas.PaymentSettings`.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from schemas import PaymentSettings

logger = logging.getLogger(__name__)

COLLECTION = "paymentsettings"
METHOD_NAMES = {"epay": "ePay UM", "fbx": "FBX Bank Transfer"}


def get_settings(db) -> Dict[str, Any]:
    settings = db[COLLECTION].find_one({})
    if settings is None:
        now = datetime.now(timezone.utc)
        doc = PaymentSettings().model_dump()
        doc["created_at"] = now
        doc["updated_at"] = now
        db[COLLECTION].insert_one(doc)
        logger.info("Created default payment settings")
        settings = db[COLLECTION].find_one({})
    return settings


def active_payment_methods(settings: Dict[str, Any]) -> List[Dict[str, Any]]:
    methods = []
    for method, name in METHOD_NAMES.items():
        block = settings.get(method) or {}
        if not block.get("enabled"):
            continue
        methods.append({
            "type": method,
            "name": name,
            "account_number": block.get("account_number"),
            "account_name": block.get("account_name"),
            "bank_name": block.get("bank_name"),
            "qr_code": block.get("qr_code"),
            "instructions": block.get("instructions"),
        })
    return methods


def find_active_method(settings: Dict[str, Any], method: str):
    for candidate in active_payment_methods(settings):
        if candidate["type"] == method:
            return candidate
    return None


def general(settings: Dict[str, Any]) -> Dict[str, Any]:
    defaults = PaymentSettings().general.model_dump()
    return {**defaults, **(settings.get("general") or {})}


def update_settings(db, updates: Dict[str, Any]) -> Dict[str, Any]:
    """Merge `updates` block by block over the stored settings.

    The merged result is validated against the schema before it is written.
    """
    current = get_settings(db)
    merged = {key: current.get(key) for key in ("epay", "fbx", "general", "is_active")}
    for block in ("epay", "fbx", "general"):
        if updates.get(block):
            merged[block] = {**(merged.get(block) or {}), **updates[block]}
    if updates.get("is_active") is not None:
        merged["is_active"] = updates["is_active"]

    validated = PaymentSettings(**{k: v for k, v in merged.items() if v is not None}).model_dump()
    validated["updated_at"] = datetime.now(timezone.utc)
    db[COLLECTION].update_one({"_id": current["_id"]}, {"$set": validated})
    logger.info("Payment settings updated: %s", ", ".join(sorted(k for k in updates if updates[k] is not None)))
    return db[COLLECTION].find_one({"_id": current["_id"]})
