from typing import Optional

from tutorbot.models.session import Mode


def bilingual(es: Optional[str], en: Optional[str], mode: Mode) -> list[str]:
    """Render a Spanish/English pair as message lines for the learner's mode.

    Empty or missing lines are dropped, so the result may be empty.
    """
    if mode == Mode.SPANISH:
        lines = [es]
    elif mode == Mode.ENGLISH:
        lines = [en]
    else:
        lines = [es, en]
    return [line for line in lines if line]
