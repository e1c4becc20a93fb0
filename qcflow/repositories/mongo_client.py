"""MongoDB Client - Connection and Collection Management"""
from typing import Any, Dict, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = PyMongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
            tz_aware=True,
        )
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    return get_database()[name]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def create_indexes() -> None:
    """Create all required indexes"""
    db = get_database()
    logger.info("Creating MongoDB indexes...")

    # Workflow templates - one document per (template_id, version)
    templates = db["workflow_templates"]
    templates.create_index([("template_id", ASCENDING), ("version", DESCENDING)], unique=True)
    templates.create_index([("tenant_id", ASCENDING), ("active", ASCENDING)])

    # Executions embed their step array
    executions = db["workflow_executions"]
    executions.create_index("execution_id", unique=True)
    executions.create_index([("tenant_id", ASCENDING), ("status", ASCENDING)])
    executions.create_index([("status", ASCENDING), ("steps.status", ASCENDING), ("steps.timeout_at", ASCENDING)])
    executions.create_index("submitted_at", background=True)

    # Comments (append-only)
    comments = db["workflow_comments"]
    comments.create_index("comment_id", unique=True)
    comments.create_index([("execution_id", ASCENDING), ("created_at", ASCENDING)])

    # Execution lease locks
    db["execution_locks"].create_index("locked_until")

    # QC ladder
    file_statuses = db["file_workflow_status"]
    file_statuses.create_index("file_id", unique=True)
    file_statuses.create_index([("tenant_id", ASCENDING), ("current_stage", ASCENDING)])

    stage_transitions = db["stage_transitions"]
    stage_transitions.create_index("transition_id", unique=True)
    stage_transitions.create_index([("file_id", ASCENDING), ("created_at", ASCENDING)])

    db["workflow_stages"].create_index([("tenant_id", ASCENDING), ("order", ASCENDING)])

    # Collaborators
    db["directory_memberships"].create_index(
        [("tenant_id", ASCENDING), ("kind", ASCENDING), ("ref_id", ASCENDING)], unique=True
    )
    db["submissions"].create_index("submission_id", unique=True)
    db["tasks"].create_index("task_id", unique=True)

    outbox = db["notification_outbox"]
    outbox.create_index("notification_id", unique=True)
    outbox.create_index([("status", ASCENDING), ("created_at", ASCENDING)])
    outbox.create_index("execution_id")

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        client = get_client()
        client.admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except Exception as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
