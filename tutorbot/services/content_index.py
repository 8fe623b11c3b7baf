"""
content_index.py - Read-only lookup over the lesson playbooks

Provides:
- ContentIndex(playbooks, rng) - In-memory index over one or more content banks
- load_content_index(directory, rng) - Build the index from JSON playbook files

Banks are concatenated in the order given (files are read in filename order),
which defines the lesson chain.
"""

import json
import logging
import random
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError

from tutorbot.errors import ContentLoadError, ContentNotFoundError
from tutorbot.models.content import LessonPlan, Opener, Playbook, Quiz, Reflection, Task

logger = logging.getLogger(__name__)


class ContentIndex:
    def __init__(self, playbooks: Iterable[Playbook], rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._lessons: dict[str, LessonPlan] = {}
        self._chain: list[str] = []
        self._openers: dict[str, Opener] = {}
        self._quizzes: dict[str, Quiz] = {}
        self._tasks: dict[str, Task] = {}
        self._reflections: dict[str, Reflection] = {}

        for pb in playbooks:
            for lesson in pb.lesson_plans:
                _add_unique(self._lessons, lesson, "lesson")
                self._chain.append(lesson.id)
            for opener in pb.openers:
                _add_unique(self._openers, opener, "opener")
            for quiz in pb.quizzes:
                _add_unique(self._quizzes, quiz, "quiz")
            for task in pb.tasks:
                _add_unique(self._tasks, task, "task")
            for reflection in pb.reflections:
                _add_unique(self._reflections, reflection, "reflection")

        # Flattened once so random picks are uniform over the whole bank
        self._quiz_list = list(self._quizzes.values())
        self._task_list = list(self._tasks.values())

    # ── Lessons ──────────────────────────────────────────────────────

    def first_lesson_id(self) -> Optional[str]:
        return self._chain[0] if self._chain else None

    def find_lesson(self, lesson_id: Optional[str]) -> Optional[LessonPlan]:
        if lesson_id is None:
            return None
        return self._lessons.get(lesson_id)

    def next_lesson_id(self, lesson_id: str) -> str:
        """Successor in the lesson chain; the last (or an unknown) id maps to itself."""
        try:
            idx = self._chain.index(lesson_id)
        except ValueError:
            return lesson_id
        if idx < len(self._chain) - 1:
            return self._chain[idx + 1]
        return lesson_id

    # ── Quizzes & tasks ──────────────────────────────────────────────

    def random_quiz(self) -> Optional[Quiz]:
        if not self._quiz_list:
            return None
        return self._rng.choice(self._quiz_list)

    def random_task(self) -> Optional[Task]:
        if not self._task_list:
            return None
        return self._rng.choice(self._task_list)

    def quiz_by_id(self, quiz_id: Optional[str]) -> Optional[Quiz]:
        return self._quizzes.get(quiz_id) if quiz_id else None

    def task_by_id(self, task_id: Optional[str]) -> Optional[Task]:
        return self._tasks.get(task_id) if task_id else None

    def require_quiz(self, quiz_id: Optional[str]) -> Quiz:
        quiz = self.quiz_by_id(quiz_id)
        if quiz is None:
            raise ContentNotFoundError("quiz", quiz_id)
        return quiz

    def require_task(self, task_id: Optional[str]) -> Task:
        task = self.task_by_id(task_id)
        if task is None:
            raise ContentNotFoundError("task", task_id)
        return task

    # ── Per-lesson text ──────────────────────────────────────────────

    def opener_of(self, lesson: LessonPlan) -> Optional[Opener]:
        return self._openers.get(lesson.warmup) if lesson.warmup else None

    def reflection_of(self, lesson: LessonPlan) -> Optional[Reflection]:
        return self._reflections.get(lesson.reflection) if lesson.reflection else None

    def __len__(self) -> int:
        return len(self._chain)


def _add_unique(table: dict, item, kind: str) -> None:
    if item.id in table:
        raise ContentLoadError(f"Duplicate {kind} id across playbooks: {item.id}")
    table[item.id] = item


def load_playbook(path: Path) -> Playbook:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return Playbook.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise ContentLoadError(f"Could not load playbook {path}: {e}") from e


def load_content_index(directory: str | Path, rng: Optional[random.Random] = None) -> ContentIndex:
    """Load every *.json playbook in the directory, in filename order."""
    directory = Path(directory)
    paths = sorted(directory.glob("*.json"))
    if not paths:
        raise ContentLoadError(f"No playbooks found in {directory}")

    index = ContentIndex((load_playbook(p) for p in paths), rng=rng)
    if not len(index):
        raise ContentLoadError(f"Playbooks in {directory} define no lessons")

    logger.info("Loaded %d playbooks, %d lessons from %s", len(paths), len(index), directory)
    return index
