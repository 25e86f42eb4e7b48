from datetime import datetime

from bson import ObjectId
from fastapi import HTTPException

# Never leave the server.
PRIVATE_USER_FIELDS = ("password_hash", "refresh_token")


def to_str_id(doc):
    """Make a Mongo document JSON friendly: _id -> id, ObjectId -> str, datetime -> isoformat."""
    if isinstance(doc, list):
        return [to_str_id(item) for item in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc
    d = {}
    for k, v in doc.items():
        if k == "_id":
            k = "id"
        d[k] = to_str_id(v)
    return d


def public_user(user: dict) -> dict:
    d = {k: v for k, v in user.items() if k not in PRIVATE_USER_FIELDS}
    return to_str_id(d)


def objid(id_str: str, name: str = "id") -> ObjectId:
    if not ObjectId.is_valid(id_str):
        raise HTTPException(status_code=400, detail=f"Invalid {name} format")
    return ObjectId(id_str)


def reject_unowned(collection, entity_id: ObjectId, entity: str) -> None:
    """Classify a failed owner-scoped lookup as 404 or 403."""
    if collection.count_documents({"_id": entity_id}):
        raise HTTPException(status_code=403, detail=f"Not allowed to modify this {entity}")
    raise HTTPException(status_code=404, detail=f"{entity.capitalize()} not found")
