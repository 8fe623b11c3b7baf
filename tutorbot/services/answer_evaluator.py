"""
answer_evaluator.py - Grade free-text answers through the oracle

Provides:
- AnswerEvaluator.evaluate(answer, prompt_context, expected) - analysis text + score
- score_from_analysis(text) - Map the leading verdict tag to a score

The oracle is asked to open its reply with one of three tags. Only the tag
decides the score; anything unrecognised scores 0. Oracle failures never
escape: the learner gets a fixed apology and the turn is scored 0.
"""

import functools
import logging
from typing import Awaitable, Callable

from tutorbot.config import settings
from tutorbot.models.session import Evaluation
from tutorbot.services import ai_client
from tutorbot.services.prompts import load_prompt

logger = logging.getLogger(__name__)

# (system_instruction, user_content, max_tokens) -> reply text
Oracle = Callable[[str, str, int], Awaitable[str]]

TAG_CORRECT = "[CORRECTO]"
TAG_PARTIAL = "[PARCIAL]"
TAG_INCORRECT = "[INCORRECTO]"

SCORE_BY_TAG = {
    TAG_CORRECT: 1.0,
    TAG_PARTIAL: 0.5,
    TAG_INCORRECT: 0.0,
}

# Leading decoration models like to put in front of the tag
_LEADING_NOISE = " \t\r\n*_>`"


def score_from_analysis(text: str | None) -> float:
    """Score for the tag the analysis starts with; 0 when there is none."""
    if not text:
        return 0.0
    head = text.lstrip(_LEADING_NOISE).upper()
    for tag, score in SCORE_BY_TAG.items():
        if head.startswith(tag):
            return score
    return 0.0


def default_grading_oracle() -> Oracle:
    return functools.partial(ai_client.complete, use_case="grading", temperature=0.1)


class AnswerEvaluator:
    def __init__(self, oracle: Oracle | None = None, max_tokens: int | None = None):
        self._oracle = oracle or default_grading_oracle()
        self._max_tokens = max_tokens or settings.oracle_max_tokens

    def apology(self) -> str:
        text = load_prompt("answer_evaluator")["apology"]
        return f"{text['es']}\n{text['en']}"

    async def evaluate(self, answer: str, prompt_context: str, expected: str) -> Evaluation:
        prompt = load_prompt("answer_evaluator")
        user_content = prompt["user_template"].format(
            prompt_context=prompt_context,
            expected=expected or "(not specified)",
            answer=answer,
        )

        try:
            analysis = await self._oracle(prompt["system_prompt"], user_content, self._max_tokens)
        except Exception as e:
            logger.error("Answer grading failed, falling back to apology: %s", e)
            return Evaluation(analysis_text=self.apology(), score=0.0)

        if not isinstance(analysis, str) or not analysis.strip():
            logger.error("Answer grading returned no text, falling back to apology")
            return Evaluation(analysis_text=self.apology(), score=0.0)

        analysis = analysis.strip()
        score = score_from_analysis(analysis)
        if score == 0.0 and not analysis.lstrip(_LEADING_NOISE).upper().startswith(TAG_INCORRECT):
            logger.warning("Grading reply had no verdict tag, scored 0: %.60r", analysis)
        return Evaluation(analysis_text=analysis, score=score)
