from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import Float, case, cast, create_engine, delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from formcraft.analytics import conversion_rate
from formcraft.errors import SlugUnavailable
from formcraft.models import AnalyticsModel, Base, FormModel, SubmissionModel, UserModel
from formcraft.utils import dumps_json, ensure_aware, loads_json, now_utc


def _aware(value: Any) -> Any:
    return ensure_aware(value) if value is not None else None


class SQLiteFormRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_forms_by_owner(self, owner_id: str) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = (
                session.query(FormModel)
                .filter(FormModel.owner_id == owner_id)
                .order_by(FormModel.updated_at.desc())
                .all()
            )
            return [self._to_dict(row) for row in rows]

    def count_forms_by_owner(self, owner_id: str) -> int:
        with self._Session() as session:
            return session.query(FormModel).filter(FormModel.owner_id == owner_id).count()

    def get_form(self, form_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.get(FormModel, form_id)
            return self._to_dict(row) if row else None

    def get_form_by_slug(self, slug: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.query(FormModel).filter(FormModel.slug == slug).first()
            return self._to_dict(row) if row else None

    def slug_exists(self, slug: str) -> bool:
        with self._Session() as session:
            return session.query(FormModel.id).filter(FormModel.slug == slug).first() is not None

    def create_form(self, form: dict[str, Any]) -> None:
        with self._Session() as session:
            row = FormModel(id=form["id"])
            self._apply(row, form)
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise SlugUnavailable(f"Address already taken: {form['slug']}") from None

    def replace_form(self, form_id: str, form: dict[str, Any]) -> None:
        with self._Session() as session:
            row = session.get(FormModel, form_id)
            if not row:
                raise KeyError(form_id)
            self._apply(row, form)
            session.commit()

    def delete_form(self, form_id: str) -> None:
        with self._Session() as session:
            session.execute(delete(SubmissionModel).where(SubmissionModel.form_id == form_id))
            session.execute(delete(AnalyticsModel).where(AnalyticsModel.form_id == form_id))
            session.execute(delete(FormModel).where(FormModel.id == form_id))
            session.commit()

    @staticmethod
    def _apply(row: FormModel, form: dict[str, Any]) -> None:
        row.owner_id = form["owner_id"]
        row.title = form["title"]
        row.description = form.get("description")
        row.slug = form["slug"]
        row.is_published = 1 if form.get("is_published") else 0
        row.expires_at = form.get("expires_at")
        row.fields_json = dumps_json(form.get("fields") or [])
        row.settings_json = dumps_json(form.get("settings") or {})
        row.created_at = form["created_at"]
        row.updated_at = form["updated_at"]

    @staticmethod
    def _to_dict(row: FormModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "owner_id": row.owner_id,
            "title": row.title,
            "description": row.description,
            "slug": row.slug,
            "is_published": bool(row.is_published),
            "expires_at": _aware(row.expires_at),
            "fields": loads_json(row.fields_json) or [],
            "settings": loads_json(row.settings_json) or {},
            "created_at": _aware(row.created_at),
            "updated_at": _aware(row.updated_at),
        }


class SQLiteSubmissionRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_submissions(self, form_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        with self._Session() as session:
            query = (
                session.query(SubmissionModel)
                .filter(SubmissionModel.form_id == form_id)
                .order_by(SubmissionModel.submitted_at.desc(), SubmissionModel.id.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            return [self._to_dict(row) for row in query.all()]

    def count_submissions(self, form_id: str) -> int:
        with self._Session() as session:
            return session.scalar(
                select(func.count()).select_from(SubmissionModel).where(SubmissionModel.form_id == form_id)
            )

    def create_submission(self, submission: dict[str, Any]) -> None:
        with self._Session() as session:
            row = SubmissionModel(
                id=submission["id"],
                form_id=submission["form_id"],
                data_json=dumps_json(submission["data"]),
                ip_address=submission.get("ip_address"),
                user_agent=submission.get("user_agent"),
                submitted_at=submission["submitted_at"],
            )
            session.add(row)
            session.commit()

    @staticmethod
    def _to_dict(row: SubmissionModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "form_id": row.form_id,
            "data": loads_json(row.data_json) or {},
            "ip_address": row.ip_address,
            "user_agent": row.user_agent,
            "submitted_at": _aware(row.submitted_at),
        }


class SQLiteAnalyticsRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def get_counters(self, form_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.get(AnalyticsModel, form_id)
            return self._to_dict(row) if row else None

    def increment(self, form_id: str, views: int = 0, submissions: int = 0) -> dict[str, Any]:
        table = AnalyticsModel.__table__
        now = now_utc()
        new_views = table.c.views + views
        new_submissions = table.c.submissions + submissions
        stmt = sqlite_insert(table).values(
            form_id=form_id,
            views=views,
            submissions=submissions,
            conversion_rate=conversion_rate(views, submissions),
            updated_at=now,
        )
        # one upsert statement: read and write happen under a single write lock
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.form_id],
            set_={
                "views": new_views,
                "submissions": new_submissions,
                "conversion_rate": case(
                    (new_views > 0, cast(new_submissions, Float) * 100.0 / new_views),
                    else_=0.0,
                ),
                "updated_at": now,
            },
        )
        with self._Session() as session:
            session.execute(stmt)
            row = session.get(AnalyticsModel, form_id)
            record = self._to_dict(row)
            session.commit()
        return record

    @staticmethod
    def _to_dict(row: AnalyticsModel) -> dict[str, Any]:
        return {
            "form_id": row.form_id,
            "views": row.views,
            "submissions": row.submissions,
            "conversion_rate": row.conversion_rate,
            "average_completion_time": row.average_completion_time,
            "updated_at": _aware(row.updated_at),
        }


class SQLiteUserRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.get(UserModel, user_id)
            return self._to_dict(row) if row else None

    def ensure_user(self, user_id: str, email: str | None = None) -> dict[str, Any]:
        now = now_utc()
        stmt = (
            sqlite_insert(UserModel.__table__)
            .values(id=user_id, email=email, plan="free", created_at=now, updated_at=now)
            .on_conflict_do_nothing(index_elements=["id"])
        )
        with self._Session() as session:
            session.execute(stmt)
            row = session.get(UserModel, user_id)
            if email and row.email != email:
                row.email = email
                row.updated_at = now
            record = self._to_dict(row)
            session.commit()
        return record

    def set_plan(self, user_id: str, plan: str) -> dict[str, Any]:
        self.ensure_user(user_id)
        with self._Session() as session:
            row = session.get(UserModel, user_id)
            row.plan = plan
            row.updated_at = now_utc()
            session.commit()
            return self._to_dict(row)

    @staticmethod
    def _to_dict(row: UserModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "email": row.email,
            "plan": row.plan or "free",
            "created_at": _aware(row.created_at),
            "updated_at": _aware(row.updated_at),
        }


class SQLiteStorage:
    def __init__(self, db_path: Path) -> None:
        self._engine = create_engine(
            f"sqlite:///{db_path}",
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        self._Session = sessionmaker(self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)
        self.forms = SQLiteFormRepo(self._Session)
        self.submissions = SQLiteSubmissionRepo(self._Session)
        self.analytics = SQLiteAnalyticsRepo(self._Session)
        self.users = SQLiteUserRepo(self._Session)

    def close(self) -> None:
        self._engine.dispose()
