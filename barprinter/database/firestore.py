"""
Firestore connection for the barprinter worker.
Owns the firebase_admin app and the Firestore client built from it.
"""
import asyncio
from typing import Optional

import firebase_admin
import structlog
from firebase_admin import credentials, firestore

from barprinter.utils.errors import ConfigurationError

logger = structlog.get_logger()


class FirestoreDatabase:
    """Firebase app lifecycle (connect/close) around a Firestore client."""

    APP_NAME = "barprinter-worker"

    def __init__(self, credentials_path: str, project_id: Optional[str] = None):
        """
        Initialize database.

        Args:
            credentials_path: Path to the service account JSON
            project_id: Optional project id override
        """
        self.credentials_path = credentials_path
        self.project_id = project_id
        self._app: Optional[firebase_admin.App] = None
        self._client = None

    async def connect(self) -> None:
        """Initialize the Firebase app and the Firestore client."""
        if self._app is not None:
            return

        try:
            cred = credentials.Certificate(self.credentials_path)
        except (OSError, ValueError) as e:
            raise ConfigurationError(
                f"Cannot load Firebase credentials from {self.credentials_path}: {e}",
                details={"credentials_path": self.credentials_path}
            )

        options = {"projectId": self.project_id} if self.project_id else None
        self._app = firebase_admin.initialize_app(cred, options=options, name=self.APP_NAME)
        self._client = await asyncio.to_thread(firestore.client, self._app)
        logger.info("Connected to Firestore", project_id=self._app.project_id)

    async def close(self) -> None:
        """Close the client and delete the Firebase app."""
        if self._app is None:
            return

        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Error closing Firestore client", error=str(e))
        firebase_admin.delete_app(self._app)
        self._app = None
        self._client = None
        logger.info("Firestore connection closed")

    @property
    def client(self):
        """Firestore client. Only valid after connect()."""
        if self._client is None:
            raise RuntimeError("FirestoreDatabase is not connected")
        return self._client
