"""
store.py — Airtable record store facade.

One row per session, keyed by the SessionID column. The route layer calls
RecordStore.upsert() and never touches pyairtable directly.

Design:
  - pyairtable is synchronous (requests); callers run these methods in a threadpool
  - Credentials are checked on every call, the Table handle is built once
  - Default write path is find-then-write: Table.first() then update() or create().
    Not atomic: two concurrent calls for a new session can both create a row.
  - airtable_atomic_upsert=True uses Table.batch_upsert(key_fields=[SessionID]),
    Airtable's server-side upsert-by-key, which closes that window
  - Logs only session_id / record_id / operation, never field values
"""
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional

from pyairtable import Api, Table

from objectives.config import Settings
from objectives.handlers.records.fields import (
    SESSION_COLUMN,
    build_record_fields,
    build_session_formula,
)

logger = logging.getLogger(__name__)

Operation = Literal["created", "updated"]

# (substrings found in the error text, client-facing message)
_ERROR_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("Invalid API key", "AUTHENTICATION_REQUIRED", "INVALID_API_KEY"), "Invalid Airtable API key"),
    (("Application not found", "INVALID_PERMISSIONS_OR_MODEL_NOT_FOUND"), "Airtable base not found"),
    (("Table not found", "TABLE_NOT_FOUND"), "Airtable table not found"),
)
DEFAULT_ERROR_MESSAGE = "Failed to log record"


@dataclass(frozen=True)
class UpsertResult:
    record_id: str
    operation: Operation


def classify_store_error(exc: Exception) -> str:
    """Map a store exception onto a short client-facing message."""
    text = str(exc)
    for needles, message in _ERROR_HINTS:
        if any(needle in text for needle in needles):
            return message
    return DEFAULT_ERROR_MESSAGE


def config_summary(settings: Settings) -> dict[str, str]:
    """Masked view of the store settings for error responses."""
    base_id = settings.airtable_base_id
    return {
        "baseId": f"{base_id[:5]}..." if base_id else "Not set",
        "tableId": "Set" if settings.airtable_table_id else "Missing",
        "apiKey": "Set" if settings.airtable_api_key else "Missing",
    }


class RecordStore:
    """Find-or-create / update access to the per-session tracking row."""

    def __init__(self, settings: Settings, table: Optional[Table] = None):
        self._settings = settings
        self._table = table

    def _get_table(self) -> Table:
        self._settings.require("airtable_api_key", "airtable_base_id", "airtable_table_id")
        if self._table is None:
            api = Api(self._settings.airtable_api_key)
            self._table = api.table(self._settings.airtable_base_id, self._settings.airtable_table_id)
        return self._table

    def find_by_session(self, session_id: str) -> Optional[dict[str, Any]]:
        """Return the first row whose SessionID equals session_id, or None."""
        table = self._get_table()
        return table.first(formula=build_session_formula(session_id))

    def upsert(self, session_id: str, data: dict[str, Any]) -> UpsertResult:
        """
        Write the allow-listed fields of `data` to the session's row,
        creating the row when none exists yet.

        Raises:
            ConfigurationError: an Airtable setting is empty.
            Exception: whatever pyairtable / requests raises; not retried.
        """
        table = self._get_table()
        fields = build_record_fields(session_id, data, self._settings.text_field_max_length)

        if self._settings.airtable_atomic_upsert:
            result = self._atomic_upsert(table, fields)
        else:
            logger.info("Checking for existing record session_id=%s", session_id)
            existing = self.find_by_session(session_id)
            if existing:
                logger.info("Updating record record_id=%s session_id=%s", existing["id"], session_id)
                record = table.update(existing["id"], fields)
                result = UpsertResult(record_id=record["id"], operation="updated")
            else:
                logger.info("Creating record session_id=%s", session_id)
                record = table.create(fields)
                result = UpsertResult(record_id=record["id"], operation="created")

        logger.info(
            "Record %s record_id=%s session_id=%s columns=%s",
            result.operation, result.record_id, session_id, sorted(fields),
        )
        return result

    @staticmethod
    def _atomic_upsert(table: Table, fields: dict[str, Any]) -> UpsertResult:
        response = table.batch_upsert([{"fields": fields}], key_fields=[SESSION_COLUMN])
        record_id = response["records"][0]["id"]
        operation: Operation = (
            "created" if record_id in response.get("createdRecords", []) else "updated"
        )
        return UpsertResult(record_id=record_id, operation=operation)
