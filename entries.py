"""
Journal entries: the validated record type and the JSON-file entry store.

Every row read from disk or received over HTTP is coerced into a
``JournalEntry`` here, so the analyzer only ever sees one closed shape.
"""

import os
import json
import shutil
import logging
import tempfile
import threading
from datetime import date, datetime
from typing import Optional, Dict, Any, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError, field_validator

from config import MAX_ENTRY_LENGTH, MAX_TAGS_PER_ENTRY, MAX_TAG_LENGTH

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"

# Every store shares one data file; writes load, mutate and save under this lock.
_write_lock = threading.Lock()


# =============================================================================
# Errors
# =============================================================================

class EntryError(Exception):
    """Base class for entry errors that map onto an HTTP status."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EntryValidationError(EntryError):
    status_code = 400


class EntryNotFoundError(EntryError):
    status_code = 404


class EntryConflictError(EntryError):
    status_code = 409


class StoreError(EntryError):
    status_code = 500


def describe_validation_error(exc: ValidationError) -> str:
    """Flatten a pydantic error into one readable line."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid data"


# =============================================================================
# Parsing helpers
# =============================================================================

def parse_entry_date(value: Any) -> date:
    """Parse a YYYY-MM-DD calendar date, failing fast on anything else."""
    if isinstance(value, datetime):
        raise EntryValidationError("Entry dates must be calendar dates, not timestamps")
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise EntryValidationError(f"Invalid date {value!r}. Use YYYY-MM-DD")
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        raise EntryValidationError(f"Invalid date {value!r}. Use YYYY-MM-DD")


def normalize_tags(tags: Any) -> Tuple[str, ...]:
    """Trim, truncate and dedupe tags, keeping the first occurrence."""
    if not isinstance(tags, (list, tuple)):
        return ()
    cleaned = []
    for tag in tags:
        if tag is None:
            continue
        label = str(tag).strip()[:MAX_TAG_LENGTH]
        if label and label not in cleaned:
            cleaned.append(label)
    return tuple(cleaned[:MAX_TAGS_PER_ENTRY])


# =============================================================================
# Models
# =============================================================================

class JournalEntry(BaseModel):
    """One owner's entry for a single calendar day."""

    model_config = ConfigDict(frozen=True)

    owner_id: str = Field(..., min_length=1)
    entry_date: date
    text: str
    mood_score: Optional[int] = Field(None, ge=1, le=5)
    tags: Tuple[str, ...] = ()
    ai_reflection: Optional[str] = None
    created_at: Optional[str] = None

    @field_validator("entry_date", mode="before")
    @classmethod
    def _calendar_date(cls, value):
        try:
            return parse_entry_date(value)
        except EntryValidationError as e:
            raise ValueError(e.message)

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value):
        return normalize_tags(value)

    @property
    def date_key(self) -> str:
        return self.entry_date.strftime(DATE_FORMAT)

    @classmethod
    def from_record(cls, owner_id: str, date_key: str, record: Dict[str, Any]) -> "JournalEntry":
        """Build an entry from a stored row, raising EntryValidationError when malformed."""
        if not isinstance(record, dict):
            raise EntryValidationError(f"Entry {date_key} is not an object")
        try:
            return cls(
                owner_id=owner_id,
                entry_date=date_key,
                text=record.get("text", ""),
                mood_score=record.get("mood_score"),
                tags=record.get("tags") or [],
                ai_reflection=record.get("ai_reflection"),
                created_at=record.get("created_at"),
            )
        except ValidationError as e:
            raise EntryValidationError(f"Entry {date_key}: {describe_validation_error(e)}")

    def to_record(self) -> Dict[str, Any]:
        """Row shape stored under owners/<owner_id>/<date_key>."""
        return {
            "text": self.text,
            "mood_score": self.mood_score,
            "tags": list(self.tags),
            "ai_reflection": self.ai_reflection,
            "created_at": self.created_at,
        }

    def to_api(self) -> Dict[str, Any]:
        return {
            "entry_date": self.date_key,
            "text": self.text,
            "mood_score": self.mood_score,
            "tags": list(self.tags),
            "ai_reflection": self.ai_reflection,
            "created_at": self.created_at,
        }


class EntryInput(BaseModel):
    """Body of POST /api/entries and PUT /api/entries/<date>."""

    text: str
    mood_score: Optional[StrictInt] = Field(None, ge=1, le=5, alias="moodScore")
    tags: List[str] = Field(default_factory=list)
    entry_date: Optional[date] = Field(None, alias="entryDate")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("text")
    @classmethod
    def _text_bounds(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please write something first")
        if len(value) > MAX_ENTRY_LENGTH:
            raise ValueError(f"Please keep it under {MAX_ENTRY_LENGTH} characters")
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_list(cls, value):
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("Tags must be a list")
        return list(normalize_tags(value))

    @field_validator("entry_date", mode="before")
    @classmethod
    def _entry_date(cls, value):
        if value is None:
            return None
        try:
            return parse_entry_date(value)
        except EntryValidationError as e:
            raise ValueError(e.message)

    @classmethod
    def parse(cls, body: Any) -> "EntryInput":
        if not isinstance(body, dict):
            raise EntryValidationError("Invalid data format")
        try:
            return cls.model_validate(body)
        except ValidationError as e:
            raise EntryValidationError(describe_validation_error(e))


# =============================================================================
# Entry Store
# =============================================================================

def _empty_data() -> Dict[str, Any]:
    return {"owners": {}, "metadata": {"created_at": datetime.now().isoformat()}}


class EntryStore:
    """
    JSON-file entry store.

    Layout: ``{"owners": {owner_id: {"YYYY-MM-DD": row}}, "metadata": {...}}``.
    The file is re-read on every call and replaced atomically on write.
    """

    def __init__(self, path: str):
        self.path = path

    # -- file I/O -------------------------------------------------------------

    def load_data(self) -> Dict[str, Any]:
        """Load store data from file with structure checks."""
        if not os.path.exists(self.path):
            return _empty_data()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"JSON decode error in {self.path}: {e}")
            raise StoreError("Journal data is unreadable")
        except OSError as e:
            logger.error(f"File read error: {e}")
            raise StoreError("Journal data is unavailable")

        if not isinstance(data, dict):
            logger.error(f"Unexpected top-level {type(data).__name__} in {self.path}")
            raise StoreError("Journal data is unreadable")

        if "owners" not in data:
            data["owners"] = {}
        if "metadata" not in data:
            data["metadata"] = {}
        if not isinstance(data["owners"], dict) or not isinstance(data["metadata"], dict):
            logger.error(f"Malformed owners or metadata section in {self.path}")
            raise StoreError("Journal data is unreadable")

        return data

    def save_data(self, data: Dict[str, Any]) -> bool:
        """Save store data atomically, keeping a copy of the previous file."""
        directory = os.path.dirname(os.path.abspath(self.path))
        backup_file = f"{self.path}.bak"
        tmp_file = None

        try:
            os.makedirs(directory, exist_ok=True)

            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=directory, suffix=".tmp", delete=False
            ) as f:
                tmp_file = f.name
                json.dump(data, f, indent=2, ensure_ascii=False)

            if os.path.exists(self.path):
                try:
                    shutil.copyfile(self.path, backup_file)
                except OSError as e:
                    logger.warning(f"Could not keep backup: {e}")

            os.replace(tmp_file, self.path)
            return True

        except OSError as e:
            logger.error(f"Save error: {e}")
            if tmp_file and os.path.exists(tmp_file):
                try:
                    os.remove(tmp_file)
                except OSError:
                    logger.warning(f"Could not remove {tmp_file}")
            return False

    def _commit(self, data: Dict[str, Any], failure: str) -> None:
        if not self.save_data(data):
            raise StoreError(failure)

    @staticmethod
    def _owner_rows(data: Dict[str, Any], owner_id: str) -> Dict[str, Any]:
        rows = data["owners"].get(owner_id)
        if not isinstance(rows, dict):
            rows = {}
            data["owners"][owner_id] = rows
        return rows

    # -- queries --------------------------------------------------------------

    def list_entries(self, owner_id: str, start: Optional[date] = None,
                     end: Optional[date] = None) -> List[JournalEntry]:
        """Range scan for one owner, ordered by date ascending."""
        data = self.load_data()
        rows = data["owners"].get(owner_id) or {}

        entries = []
        for key, record in rows.items():
            try:
                entry = JournalEntry.from_record(owner_id, key, record)
            except EntryValidationError as e:
                logger.warning(f"Skipping malformed entry for {owner_id}: {e.message}")
                continue
            if start and entry.entry_date < start:
                continue
            if end and entry.entry_date > end:
                continue
            entries.append(entry)

        entries.sort(key=lambda e: e.entry_date)
        return entries

    def get_entry(self, owner_id: str, day: date) -> JournalEntry:
        data = self.load_data()
        key = day.strftime(DATE_FORMAT)
        record = (data["owners"].get(owner_id) or {}).get(key)
        if record is None:
            raise EntryNotFoundError("Entry not found")
        return JournalEntry.from_record(owner_id, key, record)

    def has_entry(self, owner_id: str, day: date) -> bool:
        data = self.load_data()
        return day.strftime(DATE_FORMAT) in (data["owners"].get(owner_id) or {})

    # -- writes ---------------------------------------------------------------

    def insert(self, entry: JournalEntry) -> JournalEntry:
        """Insert a new entry; one entry per owner per day."""
        with _write_lock:
            data = self.load_data()
            rows = self._owner_rows(data, entry.owner_id)

            if entry.date_key in rows:
                raise EntryConflictError(f"You already wrote your good thing for {entry.date_key}")

            if entry.created_at is None:
                entry = entry.model_copy(update={"created_at": datetime.now().isoformat()})

            rows[entry.date_key] = entry.to_record()
            self._commit(data, "Failed to save entry")

        logger.info(f"Saved entry {entry.date_key} for {entry.owner_id}")
        return entry

    def update(self, owner_id: str, day: date, changes: Dict[str, Any]) -> JournalEntry:
        """Apply field changes to an existing entry and return the new version."""
        key = day.strftime(DATE_FORMAT)
        allowed = {k: v for k, v in changes.items()
                   if k in ("text", "mood_score", "tags", "ai_reflection")}

        with _write_lock:
            data = self.load_data()
            rows = self._owner_rows(data, owner_id)

            if key not in rows:
                raise EntryNotFoundError("Entry not found")

            current = JournalEntry.from_record(owner_id, key, rows[key])
            try:
                updated = JournalEntry.model_validate({**current.model_dump(), **allowed})
            except ValidationError as e:
                raise EntryValidationError(describe_validation_error(e))

            record = updated.to_record()
            record["updated_at"] = datetime.now().isoformat()
            rows[key] = record
            self._commit(data, "Failed to update entry")

        return updated

    def delete(self, owner_id: str, day: date) -> None:
        key = day.strftime(DATE_FORMAT)

        with _write_lock:
            data = self.load_data()
            rows = data["owners"].get(owner_id) or {}

            if key not in rows:
                raise EntryNotFoundError("Entry not found")

            del rows[key]
            self._commit(data, "Failed to delete entry")

        logger.info(f"Deleted entry {key} for {owner_id}")

    # -- data management ------------------------------------------------------

    def export_owner(self, owner_id: str) -> Dict[str, Any]:
        entries = self.list_entries(owner_id)
        return {
            "entries": {e.date_key: e.to_record() for e in entries},
            "exported_at": datetime.now().isoformat(),
            "version": "1.0",
        }

    def import_owner(self, owner_id: str, rows: Dict[str, Any]) -> int:
        """Replace an owner's entries with validated rows from a backup."""
        if not isinstance(rows, dict):
            raise EntryValidationError("Invalid entries format")

        validated = [JournalEntry.from_record(owner_id, key, record) for key, record in rows.items()]

        with _write_lock:
            data = self.load_data()
            data["owners"][owner_id] = {e.date_key: e.to_record() for e in validated}
            data["metadata"]["imported_at"] = datetime.now().isoformat()
            self._commit(data, "Failed to save imported data")

        return len(validated)

    def clear_owner(self, owner_id: str) -> None:
        with _write_lock:
            data = self.load_data()
            data["owners"].pop(owner_id, None)
            data["metadata"]["cleared_at"] = datetime.now().isoformat()
            self._commit(data, "Failed to clear data")
