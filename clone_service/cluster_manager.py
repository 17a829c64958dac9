from contextlib import contextmanager
from typing import Any, Dict, Iterator, List

from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from config import SERVER_TIMEOUT_MS
from logger import logger


class ClusterConnectionError(Exception):
    """Source or target deployment is unreachable or rejected the credentials."""


def connect_to_cluster(mongo_uri: str) -> MongoClient:
    """Create a MongoClient and force a round-trip so bad URIs fail fast."""
    try:
        client = MongoClient(mongo_uri, serverSelectionTimeoutMS=SERVER_TIMEOUT_MS)
    except (PyMongoError, ValueError) as e:
        # malformed URI, unknown option, ...
        raise ClusterConnectionError(f"Connection failed: {e}") from e

    try:
        client.admin.command("ping")
        return client
    except ServerSelectionTimeoutError as e:
        client.close()
        raise ClusterConnectionError(
            "Connection failed: timed out. Check your MongoDB URI and network."
        ) from e
    except (ConnectionFailure, PyMongoError) as e:
        client.close()
        raise ClusterConnectionError(f"Connection failed: {e}") from e


@contextmanager
def mongo_client(mongo_uri: str) -> Iterator[MongoClient]:
    """Scoped connection: the client is closed on every exit path."""
    client = connect_to_cluster(mongo_uri)
    try:
        yield client
    finally:
        client.close()


def list_databases(mongo_uri: str) -> List[Dict[str, Any]]:
    """Every database visible to the credential, unfiltered."""
    with mongo_client(mongo_uri) as client:
        databases = [
            {
                "name": info["name"],
                "sizeOnDisk": info.get("sizeOnDisk") or 0,
                "empty": bool(info.get("empty", False)),
            }
            for info in client.list_databases()
        ]

    logger.info("Listed %d databases", len(databases))
    return databases


def list_collections(mongo_uri: str, database_name: str) -> List[Dict[str, Any]]:
    """List collections with estimated doc counts (avoids full scans)
    and the top-level keys of one sampled document."""
    with mongo_client(mongo_uri) as client:
        db = client[database_name]
        collections_info = []

        for info in db.list_collections():
            name = info["name"]
            collection = db[name]
            try:
                count = collection.estimated_document_count()
            except PyMongoError:
                count = 0
            sample = collection.find_one()
            collections_info.append({
                "name": name,
                "type": info.get("type", "collection"),
                "documentCount": count,
                "sampleSchema": list(sample.keys()) if sample else [],
            })

    return collections_info
