"""Study center catalog (F4).

Study materials are read from data/config/study_materials_v1.yaml.
Filtering mirrors the browser tabs: search text, subject, difficulty
and a tab that is either "all", a material type, "bookmarked" or
"completed".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import structlog
import yaml

logger = structlog.get_logger(__name__)

MATERIALS_FILE = Path("data/config/study_materials_v1.yaml")

MaterialType = Literal["mindmap", "summary", "practice", "video", "audio"]
Difficulty = Literal["easy", "medium", "hard"]

MATERIAL_TYPES: tuple[str, ...] = ("mindmap", "summary", "practice", "video", "audio")
DIFFICULTIES: tuple[str, ...] = ("easy", "medium", "hard")
SPECIAL_TABS: tuple[str, ...] = ("all", "bookmarked", "completed")


class UnknownMaterialError(KeyError):
    """Raised when a material id is not in the catalog."""


@dataclass
class StudyMaterial:
    id: str
    title: str
    subject: str
    type: MaterialType
    difficulty: Difficulty
    duration: str
    completed: bool = False
    progress: int = 0
    rating: float = 0.0
    bookmarked: bool = False


@dataclass
class StudyStats:
    total: int
    completed: int
    in_progress: int
    bookmarked: int
    average_rating: float


@dataclass
class StudyCenter:
    materials: list[StudyMaterial] = field(default_factory=list)

    @property
    def subjects(self) -> list[str]:
        seen: list[str] = []
        for m in self.materials:
            if m.subject not in seen:
                seen.append(m.subject)
        return seen

    def filter(
        self,
        query: str = "",
        subject: str = "all",
        difficulty: str = "all",
        tab: str = "all",
    ) -> list[StudyMaterial]:
        """Materials matching every active filter."""
        if tab not in MATERIAL_TYPES and tab not in SPECIAL_TABS:
            raise ValueError(f"Unknown tab '{tab}'")

        needle = query.lower()
        result = []
        for m in self.materials:
            if needle and needle not in m.title.lower():
                continue
            if subject != "all" and m.subject != subject:
                continue
            if difficulty != "all" and m.difficulty != difficulty:
                continue
            if tab == "bookmarked" and not m.bookmarked:
                continue
            if tab == "completed" and not m.completed:
                continue
            if tab in MATERIAL_TYPES and m.type != tab:
                continue
            result.append(m)
        return result

    def get(self, material_id: str) -> StudyMaterial:
        for m in self.materials:
            if m.id == material_id:
                return m
        raise UnknownMaterialError(material_id)

    def toggle_bookmark(self, material_id: str) -> bool:
        """Flip a bookmark and return its new state."""
        material = self.get(material_id)
        material.bookmarked = not material.bookmarked
        return material.bookmarked

    def apply_bookmarks(self, overrides: dict[str, bool]) -> None:
        """Overlay saved bookmark states; unknown ids are ignored."""
        for m in self.materials:
            if m.id in overrides:
                m.bookmarked = overrides[m.id]

    def stats(self) -> StudyStats:
        total = len(self.materials)
        rated = [m.rating for m in self.materials if m.rating]
        return StudyStats(
            total=total,
            completed=sum(1 for m in self.materials if m.completed),
            in_progress=sum(1 for m in self.materials if not m.completed and m.progress > 0),
            bookmarked=sum(1 for m in self.materials if m.bookmarked),
            average_rating=round(sum(rated) / len(rated), 1) if rated else 0.0,
        )


def _default_materials() -> list[StudyMaterial]:
    return [
        StudyMaterial("p1", "Mechanics - Complete Mindmap", "Physics", "mindmap", "medium", "15 min", True, 100, 4.8, True),
        StudyMaterial("c2", "Inorganic Chemistry Summary", "Chemistry", "summary", "medium", "12 min", True, 100, 4.8, False),
        StudyMaterial("m3", "Trigonometry Practice - 40 Questions", "Mathematics", "practice", "medium", "50 min", False, 80, 4.8, False),
    ]


def load_study_center(path: Path | None = None) -> StudyCenter:
    """Load study materials, falling back to a small built-in set."""
    if path is None:
        path = MATERIALS_FILE

    if not path.exists():
        logger.warning("study_materials_file_not_found", path=str(path))
        return StudyCenter(materials=_default_materials())

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    materials = []
    for item in data.get("materials", []):
        if item.get("type") not in MATERIAL_TYPES or item.get("difficulty") not in DIFFICULTIES:
            logger.warning("study_material_skipped", material=item.get("id"))
            continue
        materials.append(
            StudyMaterial(
                id=str(item["id"]),
                title=item["title"],
                subject=item["subject"],
                type=item["type"],
                difficulty=item["difficulty"],
                duration=item.get("duration", ""),
                completed=bool(item.get("completed", False)),
                progress=int(item.get("progress", 0)),
                rating=float(item.get("rating", 0.0)),
                bookmarked=bool(item.get("bookmarked", False)),
            )
        )
    return StudyCenter(materials=materials)
