# connect_db.py - settings from the environment and a scoped MongoDB connection
import logging
import os
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import ConfigurationError, ConnectionFailure, OperationFailure

from .errors import DatabaseConnectionError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "plp_bookstore"
DEFAULT_TIMEOUT_MS = 5000


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    mongo_uri: str = Field(min_length=1)
    db_name: str = Field(default=DEFAULT_DB_NAME, min_length=1)
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    # only for local clusters with self-signed certificates
    tls_allow_invalid: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Read MONGO_URI, DB_NAME, MONGO_TIMEOUT_MS and MONGO_TLS_ALLOW_INVALID."""
        uri = os.getenv("MONGO_URI")
        if not uri:
            raise DatabaseConnectionError("MONGO_URI is not set; add it to the environment or a .env file")
        try:
            return cls(
                mongo_uri=uri,
                db_name=os.getenv("DB_NAME") or DEFAULT_DB_NAME,
                timeout_ms=os.getenv("MONGO_TIMEOUT_MS", str(DEFAULT_TIMEOUT_MS)),
                tls_allow_invalid=os.getenv("MONGO_TLS_ALLOW_INVALID", "false"),
            )
        except ValidationError as exc:
            raise DatabaseConnectionError(f"Invalid connection settings: {exc}") from exc

    def client_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"serverSelectionTimeoutMS": self.timeout_ms}
        if self.tls_allow_invalid:
            options["tlsAllowInvalidCertificates"] = True
        return options


ClientFactory = Callable[..., MongoClient]


@contextmanager
def connect(settings: Optional[Settings] = None, client_factory: ClientFactory = MongoClient) -> Iterator[Database]:
    """Open a client, ping it, and yield the configured database.

    The client is closed when the block exits, whether or not it raised.
    """
    settings = settings or Settings.from_env()
    try:
        client = client_factory(settings.mongo_uri, **settings.client_options())
    except (ConfigurationError, ValueError) as exc:
        raise DatabaseConnectionError(f"Invalid MongoDB URI: {exc}") from exc

    try:
        try:
            client.admin.command("ping")
        except (ConnectionFailure, OperationFailure) as exc:
            # OperationFailure here is almost always an authentication error
            logger.error("Failed to connect to MongoDB: %s", exc)
            raise DatabaseConnectionError(f"Failed to connect to MongoDB: {exc}") from exc
        logger.info("Connected to MongoDB database: %s", settings.db_name)
        yield client[settings.db_name]
    finally:
        client.close()
        logger.info("Closed MongoDB connection")


if __name__ == "__main__":
    try:
        with connect() as db:
            print(f"✅ Connected to MongoDB database: {db.name}")
    except DatabaseConnectionError as e:
        print(f"❌ Failed to connect to MongoDB: {e}")
        raise SystemExit(1)
