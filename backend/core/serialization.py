from bson import ObjectId, Decimal128
from datetime import datetime
from typing import Any, Dict, Optional


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return float(value.to_decimal())
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [serialize_value(item) for item in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Serialize MongoDB document for JSON response (handles Decimal128, ObjectId, datetime)"""
    if doc is None:
        return None
    result = {key: serialize_value(value) for key, value in doc.items()}
    if "_id" in result:
        result["id"] = result.pop("_id")
    return result
