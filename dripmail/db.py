"""
Persistence backends for contact records.

Both backends expose the same contract:

- load() -> (contacts, metadata)
- save(contacts, metadata)

SQLite is the default. A path ending in .json selects the JSON file backend,
which keeps everything in one human-readable document.

Tables (SQLite):
- contacts: One row per outreach target
- message_history: Append-only log of sent messages, ordered per contact
- store_metadata: Daily counter and bookkeeping values (key/value)
"""

import json
import logging
import os
import sqlite3
import tempfile
from typing import Optional

from dripmail.models import Contact, MessageRecord, StoreMetadata

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """The persistence medium could not be read or written."""


class SQLiteBackend:
    """Contacts and metadata stored in a local SQLite database."""

    def __init__(self, path: str):
        self.path = path

    def _connect(self) -> sqlite3.Connection:
        """Connect to the database, creating the directory if needed."""
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Initialize all tables."""
        try:
            conn = self._connect()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Cannot open contact database {self.path}: {e}") from e

        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS contacts (
                    id TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL,
                    first_name TEXT,
                    last_name TEXT,
                    name TEXT,
                    company_name TEXT,
                    city TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TIMESTAMP,
                    last_contacted TIMESTAMP,
                    responded_at TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS message_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    contact_id TEXT NOT NULL REFERENCES contacts(id),
                    position INTEGER NOT NULL,
                    message_type TEXT NOT NULL,
                    sent_at TIMESTAMP NOT NULL,
                    template_index INTEGER,
                    subject_index INTEGER,
                    UNIQUE(contact_id, position)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS store_metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot initialize contact database: {e}") from e
        finally:
            conn.close()

    def load(self) -> tuple[list[Contact], StoreMetadata]:
        """Read every contact (with history) and the metadata."""
        self.init_db()
        conn = self._connect()
        try:
            history: dict[str, list[MessageRecord]] = {}
            rows = conn.execute(
                "SELECT * FROM message_history ORDER BY contact_id, position"
            ).fetchall()
            for row in rows:
                history.setdefault(row['contact_id'], []).append(
                    MessageRecord.from_dict(dict(row))
                )

            contacts = []
            for row in conn.execute("SELECT * FROM contacts ORDER BY created_at, id"):
                data = dict(row)
                data['message_history'] = []
                contact = Contact.from_dict(data)
                contact.message_history = history.get(contact.id, [])
                contacts.append(contact)

            raw = {
                row['key']: json.loads(row['value'])
                for row in conn.execute("SELECT key, value FROM store_metadata")
            }
            return contacts, StoreMetadata.from_dict(raw)
        except (sqlite3.Error, ValueError) as e:
            raise StoreError(f"Cannot load contacts: {e}") from e
        finally:
            conn.close()

    def save(self, contacts: list[Contact], metadata: StoreMetadata) -> None:
        """Replace the stored state with the given snapshot in one transaction."""
        self.init_db()
        conn = self._connect()
        try:
            with conn:
                conn.execute("DELETE FROM message_history")
                conn.execute("DELETE FROM contacts")

                for contact in contacts:
                    data = contact.to_dict()
                    conn.execute(
                        """
                        INSERT INTO contacts
                        (id, email, first_name, last_name, name, company_name, city,
                         status, created_at, last_contacted, responded_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            data['id'], data['email'], data['first_name'],
                            data['last_name'], data['name'], data['company_name'],
                            data['city'], data['status'], data['created_at'],
                            data['last_contacted'], data['responded_at'],
                        )
                    )
                    for position, record in enumerate(data['message_history']):
                        conn.execute(
                            """
                            INSERT INTO message_history
                            (contact_id, position, message_type, sent_at,
                             template_index, subject_index)
                            VALUES (?, ?, ?, ?, ?, ?)
                            """,
                            (
                                contact.id, position, record['message_type'],
                                record['sent_at'], record['template_index'],
                                record['subject_index'],
                            )
                        )

                for key, value in metadata.to_dict().items():
                    conn.execute(
                        "INSERT OR REPLACE INTO store_metadata (key, value) VALUES (?, ?)",
                        (key, json.dumps(value))
                    )
        except sqlite3.Error as e:
            raise StoreError(f"Cannot save contacts: {e}") from e
        finally:
            conn.close()


class JSONFileBackend:
    """Contacts and metadata stored in a single JSON document."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> tuple[list[Contact], StoreMetadata]:
        if not os.path.exists(self.path):
            logger.info("No contacts file found at %s, starting with empty list", self.path)
            return [], StoreMetadata()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            contacts = [Contact.from_dict(c) for c in data.get('contacts', [])]
            metadata = StoreMetadata.from_dict(data.get('metadata') or {})
        except (OSError, ValueError, KeyError) as e:
            raise StoreError(f"Cannot load contacts from {self.path}: {e}") from e

        return contacts, metadata

    def save(self, contacts: list[Contact], metadata: StoreMetadata) -> None:
        data = {
            'contacts': [c.to_dict() for c in contacts],
            'metadata': metadata.to_dict(),
        }

        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path: Optional[str] = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            # Atomic on POSIX and Windows
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StoreError(f"Cannot save contacts to {self.path}: {e}") from e


def get_backend(path: str):
    """Pick a backend from the store path."""
    if path.lower().endswith(".json"):
        return JSONFileBackend(path)
    return SQLiteBackend(path)
