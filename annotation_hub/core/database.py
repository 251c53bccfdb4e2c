"""
Database configuration with connection pooling and index management.

This module provides:
- Optimized MongoDB connection with connection pooling
- Index creation, including the uniqueness constraints the state machines rely on
- Database health monitoring utilities
"""
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.errors import OperationFailure

from annotation_hub.core.config import settings
from annotation_hub.log.logging import logger

PROJECTS = "annotation_projects"
APPLICATIONS = "project_applications"
DT_USERS = "dt_users"
INVOICES = "invoices"
PROJECT_DELETIONS = "project_deletions"


class DatabaseManager:
    """
    Manages MongoDB connections with connection pooling and index management.
    """

    _instance: Optional["DatabaseManager"] = None
    _client: Optional[AsyncIOMotorClient] = None
    _database: Optional[AsyncIOMotorDatabase] = None
    _indexes_created: bool = False

    def __new__(cls) -> "DatabaseManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def client(self) -> AsyncIOMotorClient:
        """Get or create the MongoDB client with connection pooling."""
        if self._client is None:
            self._client = AsyncIOMotorClient(
                settings.mongodb,
                maxPoolSize=settings.mongo_max_pool_size,
                minPoolSize=settings.mongo_min_pool_size,
                maxIdleTimeMS=settings.mongo_max_idle_time_ms,
                connectTimeoutMS=settings.mongo_connect_timeout_ms,
                serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms,
                socketTimeoutMS=settings.mongo_socket_timeout_ms,
                retryWrites=True,
                retryReads=True,
                tz_aware=False,
            )
        return self._client

    @property
    def database(self) -> AsyncIOMotorDatabase:
        """Get the configured database."""
        if self._database is None:
            self._database = self.client[settings.mongodb_database]
        return self._database

    async def create_indexes(self) -> None:
        """
        Create indexes for all collections.

        Idempotent - indexes are only created once per process lifecycle.
        """
        if self._indexes_created:
            return

        try:
            await self.database[APPLICATIONS].create_indexes(
                [
                    # One application per (project, worker) pair
                    IndexModel(
                        [("projectId", ASCENDING), ("applicantId", ASCENDING)],
                        name="uniq_project_applicant",
                        unique=True,
                    ),
                    IndexModel([("projectId", ASCENDING), ("status", ASCENDING)], name="idx_project_status"),
                    IndexModel([("applicantId", ASCENDING), ("status", ASCENDING)], name="idx_applicant_status"),
                    IndexModel([("reviewedBy", ASCENDING)], name="idx_reviewed_by"),
                    IndexModel([("appliedAt", DESCENDING)], name="idx_applied_at"),
                ]
            )
            logger.info("Created indexes for project_applications collection")

            await self.database[PROJECTS].create_indexes(
                [
                    IndexModel([("projectCategory", ASCENDING), ("status", ASCENDING)], name="idx_category_status"),
                    IndexModel([("createdBy", ASCENDING)], name="idx_created_by"),
                    IndexModel([("status", ASCENDING), ("isPublic", ASCENDING)], name="idx_status_public"),
                    IndexModel(
                        [("deletionOTP.expiresAt", ASCENDING)],
                        name="idx_deletion_otp_expiry",
                        sparse=True,
                    ),
                ]
            )
            logger.info("Created indexes for annotation_projects collection")

            await self.database[INVOICES].create_indexes(
                [
                    IndexModel([("invoiceNumber", ASCENDING)], name="uniq_invoice_number", unique=True),
                    IndexModel([("dtUserId", ASCENDING), ("paymentStatus", ASCENDING)], name="idx_user_payment"),
                    IndexModel([("projectId", ASCENDING)], name="idx_project"),
                    IndexModel([("invoiceDate", DESCENDING)], name="idx_invoice_date"),
                    IndexModel([("dueDate", ASCENDING)], name="idx_due_date"),
                ]
            )
            logger.info("Created indexes for invoices collection")

            await self.database[PROJECT_DELETIONS].create_indexes(
                [IndexModel([("projectId", ASCENDING)], name="idx_project")]
            )
            logger.info("Created indexes for project_deletions collection")

            self._indexes_created = True
            logger.info("All database indexes created successfully")

        except OperationFailure as e:
            logger.error(f"Failed to create indexes: {e}")
            raise

    async def ping(self) -> bool:
        """
        Check if the database connection is healthy.

        Returns:
            True if connection is healthy, False otherwise.
        """
        try:
            await self.client.admin.command("ping")
            return True
        except Exception as e:
            logger.error(f"Database ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close the database connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("Database connection closed")


db_manager = DatabaseManager()


async def init_database() -> None:
    """
    Initialize database connection and create indexes.

    Call this during application startup.
    """
    logger.info("Initializing database connection...")

    if await db_manager.ping():
        logger.info("Database connection established")
    else:
        raise RuntimeError("Failed to connect to database")

    await db_manager.create_indexes()


async def close_database() -> None:
    """Close database connection during application shutdown."""
    await db_manager.close()


async def check_mongodb_health() -> bool:
    return await db_manager.ping()
