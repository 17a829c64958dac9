"""
Schema utilities: value-kind detection and schema inference over a sample
of documents.

Every value is classified into one of these kinds:

    string     — plain string
    number     — int / float / Decimal128
    boolean    — bool
    null       — None
    array      — list
    objectId   — bson ObjectId (the primary-key type, the "object-identifier"
                 kind; tagged with the name the driver and UI use)
    date       — datetime / date
    object     — embedded document, and anything else the driver decodes
                 (binary, regex, …)

ObjectId and datetime are structurally objects but are reported apart from
``object`` so the browser can render identifiers and timestamps.
"""

import datetime as _dt
from typing import Any, Dict, List, Sequence

from bson import Decimal128, ObjectId

from cluster_manager import mongo_client
from config import SCHEMA_SAMPLE_SIZE
from logger import logger


# ---------------------- KIND NAMES ----------------------

KIND_STRING = "string"
KIND_NUMBER = "number"
KIND_BOOLEAN = "boolean"
KIND_NULL = "null"
KIND_ARRAY = "array"
KIND_OBJECT_ID = "objectId"
KIND_DATE = "date"
KIND_OBJECT = "object"

MAX_EXAMPLES = 3

SchemaSummary = Dict[str, Dict[str, Any]]


def detect_kind(value: Any) -> str:
    """Classify a single decoded BSON value into a kind tag."""
    if value is None:
        return KIND_NULL
    if isinstance(value, bool):
        return KIND_BOOLEAN
    if isinstance(value, (int, float, Decimal128)):
        return KIND_NUMBER
    if isinstance(value, str):
        return KIND_STRING
    if isinstance(value, list):
        return KIND_ARRAY
    if isinstance(value, ObjectId):
        return KIND_OBJECT_ID
    if isinstance(value, (_dt.datetime, _dt.date)):
        return KIND_DATE
    return KIND_OBJECT


def _percentage(count: int, sample_size: int) -> int:
    return int(count * 100 / sample_size + 0.5)


# ---------------------- INFERENCE ----------------------

def infer_schema(documents: Sequence[Dict[str, Any]]) -> SchemaSummary:
    """Summarise the top-level fields of *documents*.

    For each field: the kinds seen (first-seen order, no repeats), how many
    documents carry it, that count as a percentage of the sample, and the
    first ``MAX_EXAMPLES`` values in document order.  A field missing from a
    document simply does not count for it.
    """
    schema: SchemaSummary = {}
    if not documents:
        return schema

    for doc in documents:
        for key, value in doc.items():
            entry = schema.setdefault(
                key, {"types": [], "count": 0, "percentage": 0, "examples": []}
            )
            kind = detect_kind(value)
            if kind not in entry["types"]:
                entry["types"].append(kind)
            entry["count"] += 1
            if len(entry["examples"]) < MAX_EXAMPLES:
                entry["examples"].append(value)

    sample_size = len(documents)
    for entry in schema.values():
        entry["percentage"] = _percentage(entry["count"], sample_size)

    return schema


# ---------------------- SAMPLING ----------------------

def sample_documents(
    mongo_uri: str,
    database_name: str,
    collection_name: str,
    sample_size: int = SCHEMA_SAMPLE_SIZE,
) -> List[Dict[str, Any]]:
    with mongo_client(mongo_uri) as client:
        collection = client[database_name][collection_name]
        return list(collection.find().limit(sample_size))


def sample_schema(
    mongo_uri: str,
    database_name: str,
    collection_name: str,
    sample_size: int = SCHEMA_SAMPLE_SIZE,
) -> SchemaSummary:
    """Sample *sample_size* documents and infer their schema."""
    docs = sample_documents(mongo_uri, database_name, collection_name, sample_size)
    schema = infer_schema(docs)
    logger.info(
        "Schema sampled %d docs from %s.%s — %d fields",
        len(docs), database_name, collection_name, len(schema),
    )
    return schema
