"""
Database executor: document browsing and single-document CRUD with
pagination, strict payload parsing and identifier validation.

Payload policy: filters, sort specs, documents and updates may arrive as
already-structured mappings or as JSON text (MongoDB extended JSON such as
``{"$oid": ...}`` and ``{"$date": ...}`` is understood).  Text that does not
decode to a JSON object is always a client error; an unparsable filter is
never widened into "match everything".
"""

import math
from typing import Any, Dict, List, Mapping, Optional, Union

from bson import ObjectId, json_util
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING

from cluster_manager import mongo_client
from config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from logger import logger
from schema_utils import infer_schema

Payload = Union[str, Mapping[str, Any], None]


# ---------------------- ERRORS ----------------------

class InvalidInputError(ValueError):
    """Malformed identifier, filter, document or update."""


class DocumentNotFoundError(LookupError):
    """No document matches the requested identifier."""


# ---------------------- PARSING ----------------------

def parse_object_id(value: Any) -> ObjectId:
    """Parse a 24-character hex document identifier."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise InvalidInputError(f"Invalid document id: {value!r}")
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as e:
        raise InvalidInputError(f"Invalid document id: {value!r}") from e


def parse_json_payload(value: Payload, what: str, required: bool = False) -> Dict[str, Any]:
    """Decode *value* into a dict.

    ``None`` or blank text means "not supplied": an empty dict, or an error
    when *required*.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise InvalidInputError(f"{what} is required")
        return {}

    if isinstance(value, Mapping):
        # round-trip so {"$oid": ...} style values in structured payloads decode too
        text = json_util.dumps(dict(value))
    elif isinstance(value, str):
        text = value
    else:
        raise InvalidInputError(f"Invalid {what}: expected a JSON object")

    try:
        parsed = json_util.loads(text)
    except (ValueError, TypeError, InvalidId) as e:
        raise InvalidInputError(f"Invalid {what} JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise InvalidInputError(f"Invalid {what}: expected a JSON object")
    return parsed


def _build_sort(sort_spec: Dict[str, Any]) -> Optional[List[tuple]]:
    """Convert ``{"field": 1, "other": -1}`` into a pymongo sort list."""
    if not sort_spec:
        return None
    pairs = []
    for field, direction in sort_spec.items():
        if direction in (1, "1", "asc", "ascending"):
            pairs.append((field, ASCENDING))
        elif direction in (-1, "-1", "desc", "descending"):
            pairs.append((field, DESCENDING))
        else:
            raise InvalidInputError(f"Invalid sort direction for '{field}': {direction!r}")
    return pairs


# ---------------------- LISTING ----------------------

def list_documents(
    mongo_uri: str,
    database_name: str,
    collection_name: str,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    filter_spec: Payload = None,
    sort_spec: Payload = None,
) -> Dict[str, Any]:
    """Return one page of documents plus pagination metadata and the schema
    inferred over that page.

    Returns a dict with:
    - ``documents``: raw documents for the current page
    - ``pagination``: currentPage, totalPages, totalDocuments, documentsPerPage
    - ``schema``: ``infer_schema`` over the returned documents
    """
    mongo_filter = parse_json_payload(filter_spec, "filter")
    sort = _build_sort(parse_json_payload(sort_spec, "sort"))

    # enforce hard caps
    page = max(1, page)
    limit = min(max(1, limit), MAX_PAGE_SIZE)
    skip = (page - 1) * limit

    with mongo_client(mongo_uri) as client:
        collection = client[database_name][collection_name]

        total = collection.count_documents(mongo_filter)

        cursor = collection.find(mongo_filter)
        if sort:
            cursor = cursor.sort(sort)
        documents = list(cursor.skip(skip).limit(limit))

    logger.info(
        "Listed %d/%d documents from %s.%s (page %d)",
        len(documents), total, database_name, collection_name, page,
    )
    return {
        "documents": documents,
        "pagination": {
            "currentPage": page,
            "totalPages": math.ceil(total / limit),
            "totalDocuments": total,
            "documentsPerPage": limit,
        },
        "schema": infer_schema(documents),
    }


# ---------------------- SINGLE-DOCUMENT CRUD ----------------------

def get_document(
    mongo_uri: str, database_name: str, collection_name: str, document_id: Any,
) -> Dict[str, Any]:
    oid = parse_object_id(document_id)
    with mongo_client(mongo_uri) as client:
        doc = client[database_name][collection_name].find_one({"_id": oid})
    if doc is None:
        raise DocumentNotFoundError(f"Document {oid} not found")
    return doc


def insert_document(
    mongo_uri: str, database_name: str, collection_name: str, document: Payload,
) -> ObjectId:
    """Insert one document and return its ``_id``."""
    doc = parse_json_payload(document, "document", required=True)
    with mongo_client(mongo_uri) as client:
        result = client[database_name][collection_name].insert_one(doc)
    logger.info("Inserted document %s into %s.%s", result.inserted_id, database_name, collection_name)
    return result.inserted_id


def build_update(update: Dict[str, Any]) -> Dict[str, Any]:
    """Use operator updates (``$set``, ``$inc`` …) as given; wrap a plain field
    map in ``$set``.  ``_id`` is immutable and is dropped from plain maps."""
    if not update:
        raise InvalidInputError("update must not be empty")
    operator_keys = [k for k in update if k.startswith("$")]
    if operator_keys and len(operator_keys) != len(update):
        raise InvalidInputError("update cannot mix operators and plain fields")
    if operator_keys:
        return update
    fields = {k: v for k, v in update.items() if k != "_id"}
    if not fields:
        raise InvalidInputError("update must change at least one field besides _id")
    return {"$set": fields}


def update_document(
    mongo_uri: str,
    database_name: str,
    collection_name: str,
    document_id: Any,
    update: Payload,
) -> Dict[str, int]:
    oid = parse_object_id(document_id)
    update_doc = build_update(parse_json_payload(update, "update", required=True))
    with mongo_client(mongo_uri) as client:
        result = client[database_name][collection_name].update_one({"_id": oid}, update_doc)
    if result.matched_count == 0:
        raise DocumentNotFoundError(f"Document {oid} not found")
    return {"matchedCount": result.matched_count, "modifiedCount": result.modified_count}


def delete_document(
    mongo_uri: str, database_name: str, collection_name: str, document_id: Any,
) -> None:
    oid = parse_object_id(document_id)
    with mongo_client(mongo_uri) as client:
        result = client[database_name][collection_name].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise DocumentNotFoundError(f"Document {oid} not found")
    logger.info("Deleted document %s from %s.%s", oid, database_name, collection_name)
