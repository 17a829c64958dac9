"""
FastAPI service — MongoDB database cloner and document browser.

Features:
- Connection test listing every database on a deployment
- Asynchronous whole-database cloning (documents + secondary indexes)
  with pollable job status
- Collection listing with document counts and sampled top-level keys
- Paginated document browsing with per-page schema inference
- Single-document get / insert / update / delete
"""

from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from clone_engine import start_clone
from cluster_manager import ClusterConnectionError, list_collections, list_databases
from config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SCHEMA_SAMPLE_SIZE
from db_executor import (
    DocumentNotFoundError,
    InvalidInputError,
    delete_document,
    get_document,
    insert_document,
    list_documents,
    update_document,
)
from job_tracker import JobTracker
from logger import logger
from response_formatter import (
    format_document_page,
    format_job_started,
    sanitise_value,
)
from schema_utils import sample_schema


app = FastAPI(title="Mongo Cloner", version="1.0.0")

# Jobs live for the lifetime of the process only
tracker = JobTracker()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

JsonPayload = Union[str, Dict[str, Any], None]

# ---------------------- REQUEST MODELS ----------------------


class ConnectionRequest(BaseModel):
    connectionString: str


class CloneRequest(BaseModel):
    sourceConnection: str
    targetConnection: str
    databaseName: str


class CollectionRequest(BaseModel):
    connectionString: str
    databaseName: str


class DocumentsRequest(CollectionRequest):
    collectionName: str
    page: int = Field(default=1, ge=1, description="Page number (1-based)")
    limit: int = Field(
        default=DEFAULT_PAGE_SIZE,
        ge=1,
        le=MAX_PAGE_SIZE,
        description=f"Documents per page (max {MAX_PAGE_SIZE})",
    )
    filter: JsonPayload = None
    sort: JsonPayload = None


class DocumentRequest(CollectionRequest):
    collectionName: str
    documentId: str


class InsertRequest(CollectionRequest):
    collectionName: str
    document: JsonPayload = None


class UpdateRequest(DocumentRequest):
    update: JsonPayload = None


class SchemaRequest(CollectionRequest):
    collectionName: str
    sampleSize: int = Field(default=SCHEMA_SAMPLE_SIZE, ge=1, le=1000)


# ---------------------- ERROR MAPPING ----------------------


def _raise_http(e: Exception, context: str):
    if isinstance(e, InvalidInputError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, DocumentNotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ClusterConnectionError):
        logger.error("%s connection error: %s", context, e)
        raise HTTPException(status_code=400, detail=str(e))
    logger.error("%s error: %s", context, e)
    raise HTTPException(status_code=500, detail=f"Database error: {e}")


def _require(**values: str) -> None:
    missing = [name for name, value in values.items() if not value.strip()]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required field(s): {', '.join(missing)}")


def _require_collection(request) -> None:
    _require(
        connectionString=request.connectionString,
        databaseName=request.databaseName,
        collectionName=request.collectionName,
    )


# ---------------------- CONNECTION ----------------------


@app.post("/api/test-connection")
def test_connection(request: ConnectionRequest):
    _require(connectionString=request.connectionString)
    try:
        databases = list_databases(request.connectionString)
    except (ClusterConnectionError, PyMongoError) as e:
        logger.error("test-connection error: %s", e)
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
    return {"success": True, "databases": databases}


# ---------------------- CLONING ----------------------


@app.post("/api/clone-database")
def clone_database(request: CloneRequest):
    try:
        job_id, _ = start_clone(
            tracker,
            request.sourceConnection.strip(),
            request.targetConnection.strip(),
            request.databaseName.strip(),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return format_job_started(job_id)


@app.get("/api/clone-status/{job_id}")
def clone_status(job_id: str):
    job = tracker.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_dict()


@app.get("/api/jobs")
def list_jobs():
    return [job.to_dict() for job in tracker.list()]


@app.delete("/api/jobs/{job_id}")
def delete_job(job_id: str):
    if not tracker.delete(job_id):
        raise HTTPException(status_code=404, detail="Job not found")
    return {"success": True, "message": "Job deleted"}


# ---------------------- BROWSING ----------------------


@app.post("/api/collections")
def get_collections(request: CollectionRequest):
    _require(connectionString=request.connectionString, databaseName=request.databaseName)
    try:
        collections = list_collections(request.connectionString, request.databaseName)
    except (ClusterConnectionError, PyMongoError) as e:
        _raise_http(e, "collections")
    return {"collections": collections}


@app.post("/api/documents")
def get_documents(request: DocumentsRequest):
    _require_collection(request)
    try:
        result = list_documents(
            request.connectionString,
            request.databaseName,
            request.collectionName,
            page=request.page,
            limit=request.limit,
            filter_spec=request.filter,
            sort_spec=request.sort,
        )
    except (InvalidInputError, ClusterConnectionError, PyMongoError) as e:
        _raise_http(e, "documents")
    return format_document_page(result)


@app.post("/api/schema")
def get_schema(request: SchemaRequest):
    """Schema summary over a sample of the collection (no paging)."""
    _require_collection(request)
    try:
        schema = sample_schema(
            request.connectionString,
            request.databaseName,
            request.collectionName,
            request.sampleSize,
        )
    except (ClusterConnectionError, PyMongoError) as e:
        _raise_http(e, "schema")
    return {"schema": sanitise_value(schema), "totalFields": len(schema)}


# ---------------------- CRUD ----------------------


@app.post("/api/documents/get")
def get_one(request: DocumentRequest):
    _require_collection(request)
    try:
        doc = get_document(
            request.connectionString, request.databaseName,
            request.collectionName, request.documentId,
        )
    except (InvalidInputError, DocumentNotFoundError, ClusterConnectionError, PyMongoError) as e:
        _raise_http(e, "get-document")
    return {"document": sanitise_value(doc)}


@app.post("/api/documents/insert")
def insert_one(request: InsertRequest):
    _require_collection(request)
    try:
        inserted_id = insert_document(
            request.connectionString, request.databaseName,
            request.collectionName, request.document,
        )
    except (InvalidInputError, ClusterConnectionError, PyMongoError) as e:
        _raise_http(e, "insert-document")
    return {"success": True, "insertedId": str(inserted_id)}


@app.post("/api/documents/update")
def update_one(request: UpdateRequest):
    _require_collection(request)
    try:
        result = update_document(
            request.connectionString, request.databaseName,
            request.collectionName, request.documentId, request.update,
        )
    except (InvalidInputError, DocumentNotFoundError, ClusterConnectionError, PyMongoError) as e:
        _raise_http(e, "update-document")
    return {"success": True, **result}


@app.post("/api/documents/delete")
def delete_one(request: DocumentRequest):
    _require_collection(request)
    try:
        delete_document(
            request.connectionString, request.databaseName,
            request.collectionName, request.documentId,
        )
    except (InvalidInputError, DocumentNotFoundError, ClusterConnectionError, PyMongoError) as e:
        _raise_http(e, "delete-document")
    return {"success": True, "message": "Document deleted"}


@app.get("/health")
def health_check():
    return {"status": "ok", "version": "1.0.0", "jobs": len(tracker)}
