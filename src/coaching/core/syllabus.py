"""Syllabus tracker (F4).

Loads the topic catalog from data/config/syllabus_v1.yaml and derives
per-subject progress from topic confidence weighted by exam weightage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import structlog
import yaml

logger = structlog.get_logger(__name__)

SYLLABUS_FILE = Path("data/config/syllabus_v1.yaml")

TopicStatus = Literal["not-started", "in-progress", "completed", "mastered"]
TOPIC_STATUSES: tuple[str, ...] = ("not-started", "in-progress", "completed", "mastered")


@dataclass
class Topic:
    id: str
    name: str
    weightage: int
    confidence: int = 0
    questions_attempted: int = 0
    questions_correct: int = 0
    status: TopicStatus = "not-started"
    last_practiced: str | None = None

    @property
    def accuracy(self) -> int:
        """Percentage of attempted questions answered correctly."""
        if self.questions_attempted == 0:
            return 0
        return round(self.questions_correct * 100 / self.questions_attempted)


@dataclass
class Subject:
    id: str
    name: str
    topics: list[Topic] = field(default_factory=list)

    @property
    def overall_progress(self) -> int:
        """Confidence averaged over topics, weighted by weightage."""
        total_weight = sum(t.weightage for t in self.topics)
        if total_weight == 0:
            return 0
        return round(sum(t.confidence * t.weightage for t in self.topics) / total_weight)

    def count(self, status: str) -> int:
        return sum(1 for t in self.topics if t.status == status)

    def weakest_topics(self, limit: int = 3) -> list[Topic]:
        """Started topics with the lowest confidence first."""
        started = [t for t in self.topics if t.status != "not-started"]
        return sorted(started, key=lambda t: t.confidence)[:limit]


@dataclass
class SyllabusTracker:
    subjects: list[Subject] = field(default_factory=list)

    def subject(self, name: str) -> Subject | None:
        key = name.lower()
        return next(
            (s for s in self.subjects if s.name.lower() == key or s.id == key), None
        )

    def for_subjects(self, names: list[str]) -> SyllabusTracker:
        """Restrict to the subjects of an exam selection, keeping its order."""
        selected = [s for n in names if (s := self.subject(n)) is not None]
        return SyllabusTracker(subjects=selected)

    @property
    def overall_progress(self) -> int:
        if not self.subjects:
            return 0
        return round(sum(s.overall_progress for s in self.subjects) / len(self.subjects))

    def status_counts(self) -> dict[str, int]:
        return {
            status: sum(s.count(status) for s in self.subjects)
            for status in TOPIC_STATUSES
        }


def _default_catalog() -> list[Subject]:
    """Minimal catalog used when the YAML file is missing."""
    return [
        Subject(
            id="physics",
            name="Physics",
            topics=[
                Topic("p1", "Mechanics", 15, 85, 45, 38, "mastered"),
                Topic("p2", "Thermodynamics", 12, 58, 30, 17, "in-progress"),
                Topic("p3", "Electromagnetism", 18, 72, 50, 36, "in-progress"),
            ],
        ),
    ]


def _parse_topic(data: dict) -> Topic:
    status = data.get("status", "not-started")
    if status not in TOPIC_STATUSES:
        logger.warning("unknown_topic_status", topic=data.get("id"), status=status)
        status = "not-started"
    return Topic(
        id=str(data["id"]),
        name=data["name"],
        weightage=int(data.get("weightage", 0)),
        confidence=int(data.get("confidence", 0)),
        questions_attempted=int(data.get("questions_attempted", 0)),
        questions_correct=int(data.get("questions_correct", 0)),
        status=status,
        last_practiced=data.get("last_practiced"),
    )


def load_syllabus(path: Path | None = None) -> SyllabusTracker:
    """Load the syllabus catalog.

    Args:
        path: Catalog file (defaults to data/config/syllabus_v1.yaml)

    Returns:
        SyllabusTracker, built from defaults when the file is missing.
    """
    if path is None:
        path = SYLLABUS_FILE

    if not path.exists():
        logger.warning("syllabus_file_not_found", path=str(path))
        return SyllabusTracker(subjects=_default_catalog())

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    subjects = [
        Subject(
            id=str(sdata.get("id", name.lower())),
            name=name,
            topics=[_parse_topic(t) for t in sdata.get("topics", [])],
        )
        for name, sdata in (data.get("subjects") or {}).items()
    ]
    return SyllabusTracker(subjects=subjects)
