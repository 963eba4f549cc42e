from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from formcraft.protocols import AnalyticsRepository
from formcraft.utils import now_utc, parse_dt, to_iso
from formcraft.validator import is_empty

logger = logging.getLogger(__name__)


def conversion_rate(views: int, submissions: int) -> float:
    if views <= 0:
        return 0.0
    return submissions / views * 100


@dataclass
class AnalyticsCounters:
    form_id: str
    views: int = 0
    submissions: int = 0
    average_completion_time: int | None = None
    updated_at: datetime = field(default_factory=now_utc)

    @property
    def conversion_rate(self) -> float:
        return conversion_rate(self.views, self.submissions)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "AnalyticsCounters":
        return cls(
            form_id=record["form_id"],
            views=int(record.get("views") or 0),
            submissions=int(record.get("submissions") or 0),
            average_completion_time=record.get("average_completion_time"),
            updated_at=parse_dt(record.get("updated_at")) or now_utc(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "formId": self.form_id,
            "views": self.views,
            "submissions": self.submissions,
            "conversionRate": round(self.conversion_rate, 2),
            "averageCompletionTime": self.average_completion_time,
            "updatedAt": to_iso(self.updated_at),
        }


class AnalyticsAggregator:
    """Per-form counters plus the read-time field completion statistic.

    Increments are delegated to the repository's atomic upsert so concurrent
    requests against the same form never lose an update.
    """

    def __init__(self, repo: AnalyticsRepository) -> None:
        self._repo = repo

    def get(self, form_id: str) -> AnalyticsCounters:
        record = self._repo.get_counters(form_id)
        if record is None:
            return AnalyticsCounters(form_id=form_id)
        return AnalyticsCounters.from_record(record)

    def record_view(self, form_id: str) -> AnalyticsCounters:
        return AnalyticsCounters.from_record(self._repo.increment(form_id, views=1))

    def record_submission(self, form_id: str) -> AnalyticsCounters:
        counters = AnalyticsCounters.from_record(self._repo.increment(form_id, submissions=1))
        logger.debug("Form %s now has %s submissions", form_id, counters.submissions)
        return counters

    @staticmethod
    def derive_field_completion(
        submissions: Iterable[dict[str, Any]],
        field_ids: Iterable[str] | None = None,
    ) -> dict[str, float]:
        """Percentage of the sampled submissions in which each field has a value.

        With ``field_ids`` exactly those fields are reported, including ones nobody filled
        in; without it the keys observed in the sample are reported.
        """
        sample = [submission.get("data") or {} for submission in submissions]
        if not sample:
            return {}
        known = list(field_ids) if field_ids is not None else None
        filled: dict[str, int] = dict.fromkeys(known or [], 0)
        for data in sample:
            for field_id, value in data.items():
                if known is not None and field_id not in filled:
                    continue
                count = filled.setdefault(field_id, 0)
                if not is_empty(value):
                    filled[field_id] = count + 1
        return {field_id: round(count / len(sample) * 100, 2) for field_id, count in filled.items()}
