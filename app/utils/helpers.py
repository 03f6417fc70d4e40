"""
Common utility functions and helpers.
"""
from datetime import date
import time
import uuid


def new_id(prefix: str) -> str:
    """
    Generate a short unique identifier.

    Args:
        prefix: Readable prefix, e.g. "page" or "file"

    Returns:
        Identifier such as ``page-3f9c0a1b2d4e``
    """
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def title_case_words(text: str) -> str:
    """
    Capitalise the first letter of every space-separated word, lower-case the rest.

    Args:
        text: Upper-case authority name, e.g. "PHÒNG NGHIÊN CỨU"

    Returns:
        "Phòng Nghiên Cứu"
    """
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split(" "))


def initials(text: str) -> str:
    """
    Initials of the words that start with an upper-case character.

    Words starting with a digit or punctuation count as upper-case, matching
    how the reference line has always been built.
    """
    return "".join(
        word[0] for word in text.split(" ") if word and word[0] == word[0].upper()
    )


def vietnamese_date_line(place: str, day: date) -> str:
    """Format the place/date line: ``Hà Nội, ngày 5 tháng 3 năm 2025``."""
    return f"{place}, ngày {day.day} tháng {day.month} năm {day.year}"


def timestamp_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)
