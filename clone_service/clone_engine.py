"""
Clone engine: mirrors every collection of one database from a source
deployment to a target deployment, reporting into a tracked job.

Each job runs on its own worker thread and performs its steps strictly in
sequence:

    connect  →  analyze (list collections, count documents)
             →  per collection: drop target, copy documents in batches,
                recreate secondary indexes

The document total is counted before any copying so progress can be
reported as a percentage.  Target collections are dropped first, so the
result is a mirror rather than a merge.  There is no rollback: a fatal
error leaves the target as it was at the moment of failure.
"""

import threading
from typing import Any, Dict, List, Tuple

from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from cluster_manager import mongo_client
from config import CLONE_BATCH_SIZE
from job_tracker import (
    STATUS_ANALYZING,
    STATUS_CLONING,
    STATUS_COMPLETED,
    STATUS_CONNECTING,
    STATUS_FAILED,
    JobHandle,
    JobTracker,
    compute_progress,
)
from logger import logger

PRIMARY_INDEX_NAME = "_id_"

# index-info fields that describe the source index rather than its behaviour
NON_PORTABLE_INDEX_FIELDS = ("v", "name", "ns", "key")


# ---------------------- LAUNCH ----------------------

def start_clone(
    tracker: JobTracker,
    source_uri: str,
    target_uri: str,
    database_name: str,
    batch_size: int = CLONE_BATCH_SIZE,
) -> Tuple[str, threading.Thread]:
    """Allocate a job and start cloning on a background thread.

    Returns as soon as the worker has been started.  Only missing inputs
    make this fail; everything that goes wrong later is reported through
    the job's status.
    """
    if not source_uri or not target_uri or not database_name:
        raise ValueError(
            "Source connection, target connection, and database name are required"
        )

    handle = tracker.create()
    worker = threading.Thread(
        target=run_clone,
        args=(handle, source_uri, target_uri, database_name, batch_size),
        name=f"clone-{handle.job_id}",
        daemon=True,
    )
    worker.start()
    logger.info("[CLONE] Job %s started for database '%s'", handle.job_id, database_name)
    return handle.job_id, worker


# ---------------------- WORKER ----------------------

def run_clone(
    handle: JobHandle,
    source_uri: str,
    target_uri: str,
    database_name: str,
    batch_size: int = CLONE_BATCH_SIZE,
) -> None:
    """Run one clone job to completion.  Never raises."""
    try:
        handle.advance(STATUS_CONNECTING, "Connecting to source and target databases...")

        with mongo_client(source_uri) as source_client, mongo_client(target_uri) as target_client:
            source_db = source_client[database_name]
            target_db = target_client[database_name]

            handle.advance(STATUS_ANALYZING, "Analyzing source database structure...")
            names, total_documents = _analyze(source_db)
            handle.update(
                collections=names,
                total_collections=len(names),
                total_documents=total_documents,
            )
            logger.info(
                "[CLONE] Job %s — %d collections, %d documents in '%s'",
                handle.job_id, len(names), total_documents, database_name,
            )

            handle.advance(STATUS_CLONING, f"Starting to clone {len(names)} collections...")
            handle.update(progress=compute_progress(0, total_documents))

            for name in names:
                handle.update(current_collection=name, details=f"Cloning collection: {name}")
                _clone_collection(handle, source_db[name], target_db[name], batch_size)
                handle.collection_done()

        handle.finish(
            STATUS_COMPLETED,
            f"Successfully cloned database '{database_name}' with "
            f"{len(names)} collections and {total_documents} documents",
        )
        logger.info("[CLONE] Job %s completed", handle.job_id)

    except Exception as e:
        logger.error("[CLONE] Job %s failed: %s", handle.job_id, e)
        handle.finish(STATUS_FAILED, f"Error: {e}", error=str(e))


def _analyze(source_db) -> Tuple[List[str], int]:
    """One pass over the collection metadata: names and the document total."""
    names = [info["name"] for info in source_db.list_collections()]
    total = 0
    for name in names:
        total += source_db[name].count_documents({})
    return names, total


def _clone_collection(
    handle: JobHandle,
    source: Collection,
    target: Collection,
    batch_size: int,
) -> None:
    # dropping a missing collection is a no-op in the driver
    target.drop()

    batch: List[Dict[str, Any]] = []
    for doc in source.find({}):
        batch.append(doc)
        if len(batch) >= batch_size:
            _insert_batch(handle, target, batch)
            batch = []
    if batch:
        _insert_batch(handle, target, batch)

    _copy_indexes(handle, source, target)


def _insert_batch(handle: JobHandle, target: Collection, batch: List[Dict[str, Any]]) -> None:
    target.insert_many(batch, ordered=True)
    handle.add_documents(len(batch))


def index_options(index_info: Dict[str, Any]) -> Dict[str, Any]:
    """Creation options for a copied index, without the source-specific fields."""
    return {k: v for k, v in index_info.items() if k not in NON_PORTABLE_INDEX_FIELDS}


def _copy_indexes(handle: JobHandle, source: Collection, target: Collection) -> None:
    """Recreate every secondary index.  Each failure is recorded and skipped."""
    for index_info in source.list_indexes():
        index_name = index_info.get("name")
        if index_name == PRIMARY_INDEX_NAME:
            continue
        try:
            keys = list(index_info["key"].items())
            target.create_index(keys, **index_options(index_info))
        except (PyMongoError, TypeError, ValueError) as e:
            message = f"Failed to create index {index_name} on {source.name}: {e}"
            logger.warning("[CLONE] Job %s — %s", handle.job_id, message)
            handle.add_error(message)
