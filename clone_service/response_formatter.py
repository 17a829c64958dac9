"""
Response formatter: builds the final JSON responses for the API.

Documents decoded by the driver carry ObjectId, datetime, Decimal128 and
binary values that FastAPI cannot encode, so every document-bearing response
goes through ``sanitise_value`` first.
"""

import datetime as _dt
from typing import Any, Dict, List

from bson import ObjectId


def sanitise_value(obj: Any) -> Any:
    """Recursively convert non-JSON-safe types to safe representations."""
    if isinstance(obj, dict):
        return {k: sanitise_value(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitise_value(item) for item in obj]
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, (_dt.datetime, _dt.date)):
        return obj.isoformat()
    if isinstance(obj, bytes):
        try:
            return obj.decode("utf-8")
        except (UnicodeDecodeError, ValueError):
            return f"[binary {len(obj)} bytes]"
    if isinstance(obj, (int, float, str, bool, type(None))):
        return obj
    # Decimal128, Regex, Timestamp, etc.
    return str(obj)


def clean_documents(documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [sanitise_value(doc) for doc in documents]


def format_document_page(result: Dict[str, Any]) -> Dict[str, Any]:
    """Make a ``list_documents`` result JSON-safe, examples included."""
    return {
        "documents": clean_documents(result["documents"]),
        "pagination": result["pagination"],
        "schema": sanitise_value(result["schema"]),
    }


def format_job_started(job_id: str) -> Dict[str, Any]:
    return {
        "success": True,
        "jobId": job_id,
        "started": True,
        "message": "Cloning process started",
    }
