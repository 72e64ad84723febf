# app/utils/text.py

import re

MAX_TEXT_LENGTH = 10000

_ANGLE_BRACKETS = re.compile(r"[<>]")


def sanitize_string(value: str, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Убирает < и >, обрезает пробелы и длину у пользовательского текста."""
    return _ANGLE_BRACKETS.sub("", value).strip()[:max_length]
