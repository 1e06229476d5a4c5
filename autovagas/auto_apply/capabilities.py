"""
Outbound collaborators of the auto-apply engine.

Documents, the product's own job board and the user directory are consumed
through small protocols; the SQLite implementations below back them with the
tables created by ``init_database``.
"""

import json
import uuid
from datetime import datetime
from typing import Optional, Protocol

from autovagas.core.database import get_db
from autovagas.core.models import (
    Document,
    DocumentType,
    NormalizedListing,
    SubscriptionTier,
    User,
)


class DocumentProvider(Protocol):
    async def get_default_document(self, user_id: str, doc_type: DocumentType) -> Optional[Document]: ...

    async def increment_usage_count(self, document_id: str) -> None: ...


class JobBoard(Protocol):
    async def create_job(self, listing: NormalizedListing) -> str: ...

    async def apply(self, user_id: str, job_id: str, cover_letter: Optional[str] = None,
                    resume_url: Optional[str] = None) -> str: ...


class UserDirectory(Protocol):
    async def get_by_id(self, user_id: str) -> Optional[User]: ...


class SqliteDocumentProvider:
    def __init__(self, db_path):
        self.db_path = db_path

    async def get_default_document(self, user_id: str, doc_type: DocumentType) -> Optional[Document]:
        async with get_db(self.db_path) as db:
            cursor = await db.execute(
                """SELECT * FROM documents
                   WHERE user_id = ? AND type = ? AND is_default = 1
                   ORDER BY created_at DESC LIMIT 1""",
                (user_id, DocumentType(doc_type).value),
            )
            row = await cursor.fetchone()
        if not row:
            return None
        return Document(
            id=row["id"],
            user_id=row["user_id"],
            type=DocumentType(row["type"]),
            title=row["title"] or "",
            content=row["content"],
            url=row["url"],
            is_default=bool(row["is_default"]),
            usage_count=row["usage_count"],
        )

    async def increment_usage_count(self, document_id: str) -> None:
        async with get_db(self.db_path) as db:
            await db.execute(
                "UPDATE documents SET usage_count = usage_count + 1 WHERE id = ?",
                (document_id,),
            )
            await db.commit()


class SqliteJobBoard:
    """System-of-record jobs and applications, keyed by (platform, external_id)."""

    def __init__(self, db_path):
        self.db_path = db_path

    async def create_job(self, listing: NormalizedListing) -> str:
        async with get_db(self.db_path) as db:
            await db.execute(
                """INSERT INTO jobs
                   (id, platform, external_id, title, company, location, description, url, data_json, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(platform, external_id) DO UPDATE SET
                       title = excluded.title,
                       company = excluded.company,
                       location = excluded.location,
                       description = excluded.description,
                       url = excluded.url,
                       data_json = excluded.data_json""",
                (str(uuid.uuid4()), listing.platform.value, listing.id, listing.title,
                 listing.company_name, listing.location, listing.description, listing.url,
                 json.dumps(listing.to_dict()), datetime.now().isoformat()),
            )
            cursor = await db.execute(
                "SELECT id FROM jobs WHERE platform = ? AND external_id = ?",
                (listing.platform.value, listing.id),
            )
            row = await cursor.fetchone()
            await db.commit()
        return row["id"]

    async def apply(self, user_id: str, job_id: str, cover_letter: Optional[str] = None,
                    resume_url: Optional[str] = None) -> str:
        application_id = str(uuid.uuid4())
        async with get_db(self.db_path) as db:
            await db.execute(
                """INSERT INTO applications (id, user_id, job_id, cover_letter, resume_url, status, created_at)
                   VALUES (?, ?, ?, ?, ?, 'APPLIED', ?)""",
                (application_id, user_id, job_id, cover_letter, resume_url, datetime.now().isoformat()),
            )
            await db.commit()
        return application_id


class SqliteUserDirectory:
    def __init__(self, db_path):
        self.db_path = db_path

    async def get_by_id(self, user_id: str) -> Optional[User]:
        async with get_db(self.db_path) as db:
            cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = await cursor.fetchone()
        if not row:
            return None
        try:
            tier = SubscriptionTier(row["subscription_tier"])
        except ValueError:
            tier = SubscriptionTier.BASIC
        return User(id=row["id"], email=row["email"], subscription_tier=tier)

    async def create(self, email: str, subscription_tier: SubscriptionTier = SubscriptionTier.BASIC,
                     user_id: Optional[str] = None) -> User:
        user_id = user_id or str(uuid.uuid4())
        async with get_db(self.db_path) as db:
            await db.execute(
                "INSERT INTO users (id, email, subscription_tier) VALUES (?, ?, ?)",
                (user_id, email, SubscriptionTier(subscription_tier).value),
            )
            await db.commit()
        return User(id=user_id, email=email, subscription_tier=SubscriptionTier(subscription_tier))
