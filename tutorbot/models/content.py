from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional


class LessonPlan(BaseModel):
    id: str
    warmup: Optional[str] = None
    quiz: Optional[str] = None
    task: Optional[str] = None
    reflection: Optional[str] = None

    @field_validator("quiz", mode="before")
    @classmethod
    def _first_quiz(cls, value):
        # Older playbooks list several quiz ids per lesson; the first one is the lesson quiz
        if isinstance(value, list):
            return value[0] if value else None
        return value


class Opener(BaseModel):
    id: str
    es: str = ""
    en: str = ""


class Quiz(BaseModel):
    id: str
    prompt: str
    answer: Optional[str] = None
    expected_language: str = "es"


class Task(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    prompt_es: str = Field(alias="es")
    prompt_en: str = Field(default="", alias="en")
    expected_output: str = ""


class Reflection(BaseModel):
    id: str
    es: str = ""
    en: str = ""


class Playbook(BaseModel):
    """One content bank file."""
    lesson_plans: list[LessonPlan] = []
    openers: list[Opener] = []
    quizzes: list[Quiz] = []
    tasks: list[Task] = []
    reflections: list[Reflection] = []
