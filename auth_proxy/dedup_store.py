"""
Dedup index for dynamically registered public clients.
Maps a composite key of (client_name, redirect set) to the upstream client_id so
repeated identical registrations reuse one Cognito app client.
"""
import base64
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth_proxy.models import PublicClient

logger = logging.getLogger(__name__)


class DedupStoreError(Exception):
    """The index could not be read or written."""


def client_key(client_name: str | None, redirect_uris: list[str]) -> str:
    """client_name + "#" + base64url(sorted redirect_uris joined by ","); order of URIs does not matter."""
    joined = ",".join(sorted(redirect_uris))
    encoded = base64.urlsafe_b64encode(joined.encode("utf-8")).rstrip(b"=").decode("ascii")
    return f"{client_name or ''}#{encoded}"


class DedupStore:
    def __init__(self, db: Session):
        self.db = db

    def find(self, key: str) -> PublicClient | None:
        try:
            return self.db.get(PublicClient, key)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DedupStoreError(str(e)) from e

    def put(self, key: str, client_id: str) -> None:
        """
        Record key -> client_id, overwriting any existing entry.
        There is no create-if-absent guard: two concurrent identical registrations may both create
        upstream clients and the later write wins.
        """
        try:
            self.db.merge(PublicClient(client_key=key, client_id=client_id, created_at=datetime.now(timezone.utc)))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DedupStoreError(str(e)) from e
        logger.info("Stored public client: %s", client_id)
