from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from filelock import FileLock
from tinydb import Query, TinyDB

from formcraft.analytics import conversion_rate
from formcraft.errors import SlugUnavailable
from formcraft.utils import now_utc, parse_dt, to_iso

_DATE_KEYS = {"created_at", "updated_at", "expires_at", "submitted_at"}


def _to_record(item: dict[str, Any]) -> dict[str, Any]:
    return {
        key: to_iso(value) if key in _DATE_KEYS and isinstance(value, datetime) else value
        for key, value in item.items()
    }


def _from_record(record: dict[str, Any]) -> dict[str, Any]:
    return {key: parse_dt(value) if key in _DATE_KEYS else value for key, value in record.items()}


class JSONRepoBase:
    def __init__(self, path: Path, lock: FileLock) -> None:
        self._path = path
        self._lock = lock

    @contextmanager
    def _db(self) -> Iterator[TinyDB]:
        with self._lock:
            db = TinyDB(self._path)
            try:
                yield db
            finally:
                db.close()


class JSONFormRepo(JSONRepoBase):
    def list_forms_by_owner(self, owner_id: str) -> list[dict[str, Any]]:
        with self._db() as db:
            items = db.table("forms").search(Query().owner_id == owner_id)
        forms = [_from_record(item) for item in items]
        return sorted(forms, key=lambda x: x["updated_at"], reverse=True)

    def count_forms_by_owner(self, owner_id: str) -> int:
        with self._db() as db:
            return db.table("forms").count(Query().owner_id == owner_id)

    def get_form(self, form_id: str) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table("forms").get(Query().id == form_id)
        return _from_record(item) if item else None

    def get_form_by_slug(self, slug: str) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table("forms").get(Query().slug == slug)
        return _from_record(item) if item else None

    def slug_exists(self, slug: str) -> bool:
        with self._db() as db:
            return db.table("forms").contains(Query().slug == slug)

    def create_form(self, form: dict[str, Any]) -> None:
        record = _to_record(form)
        with self._db() as db:
            table = db.table("forms")
            if table.contains(Query().slug == record["slug"]):
                raise SlugUnavailable(f"Address already taken: {record['slug']}")
            table.insert(record)

    def replace_form(self, form_id: str, form: dict[str, Any]) -> None:
        record = _to_record(form)
        with self._db() as db:
            table = db.table("forms")
            if not table.contains(Query().id == form_id):
                raise KeyError(form_id)
            table.remove(Query().id == form_id)
            table.insert(record)

    def delete_form(self, form_id: str) -> None:
        with self._db() as db:
            db.table("submissions").remove(Query().form_id == form_id)
            db.table("analytics").remove(Query().form_id == form_id)
            db.table("forms").remove(Query().id == form_id)


class JSONSubmissionRepo(JSONRepoBase):
    def list_submissions(self, form_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        with self._db() as db:
            items = db.table("submissions").search(Query().form_id == form_id)
        submissions = [_from_record(item) for item in items]
        submissions.sort(key=lambda x: (x["submitted_at"], x["id"]), reverse=True)
        return submissions[:limit] if limit is not None else submissions

    def count_submissions(self, form_id: str) -> int:
        with self._db() as db:
            return db.table("submissions").count(Query().form_id == form_id)

    def create_submission(self, submission: dict[str, Any]) -> None:
        record = _to_record(submission)
        with self._db() as db:
            db.table("submissions").insert(record)


class JSONAnalyticsRepo(JSONRepoBase):
    def get_counters(self, form_id: str) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table("analytics").get(Query().form_id == form_id)
        return _from_record(item) if item else None

    def increment(self, form_id: str, views: int = 0, submissions: int = 0) -> dict[str, Any]:
        now = to_iso(now_utc())

        def bump(doc: dict[str, Any]) -> None:
            doc["views"] = doc.get("views", 0) + views
            doc["submissions"] = doc.get("submissions", 0) + submissions
            doc["conversion_rate"] = conversion_rate(doc["views"], doc["submissions"])
            doc["updated_at"] = now

        # the file lock is held across the read and the write
        with self._db() as db:
            table = db.table("analytics")
            if table.contains(Query().form_id == form_id):
                table.update(bump, Query().form_id == form_id)
            else:
                doc: dict[str, Any] = {"form_id": form_id, "average_completion_time": None}
                bump(doc)
                table.insert(doc)
            item = table.get(Query().form_id == form_id)
        return _from_record(item)


class JSONUserRepo(JSONRepoBase):
    def get_user(self, user_id: str) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table("users").get(Query().id == user_id)
        return _from_record(item) if item else None

    def ensure_user(self, user_id: str, email: str | None = None) -> dict[str, Any]:
        now = to_iso(now_utc())
        with self._db() as db:
            table = db.table("users")
            item = table.get(Query().id == user_id)
            if not item:
                table.insert(
                    {"id": user_id, "email": email, "plan": "free", "created_at": now, "updated_at": now}
                )
            elif email and item.get("email") != email:
                table.update({"email": email, "updated_at": now}, Query().id == user_id)
            item = table.get(Query().id == user_id)
        return _from_record(item)

    def set_plan(self, user_id: str, plan: str) -> dict[str, Any]:
        self.ensure_user(user_id)
        with self._db() as db:
            table = db.table("users")
            table.update({"plan": plan, "updated_at": to_iso(now_utc())}, Query().id == user_id)
            item = table.get(Query().id == user_id)
        return _from_record(item)


class JSONStorage:
    def __init__(self, path: Path) -> None:
        self._lock = FileLock(f"{path}.lock")
        self.forms = JSONFormRepo(path, self._lock)
        self.submissions = JSONSubmissionRepo(path, self._lock)
        self.analytics = JSONAnalyticsRepo(path, self._lock)
        self.users = JSONUserRepo(path, self._lock)

    def close(self) -> None:
        return None
