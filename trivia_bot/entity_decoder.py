"""
Entity decoder for raw trivia records.

Turns records from the trivia service into normalized Question objects:
assigns a local id, fixes the answer order once, and unescapes HTML entities
in every display string.
"""
import logging
import random
import re
from html.entities import html5
from typing import Any, Callable, Iterable, List, Mapping, Optional
from uuid import uuid4

from .exceptions import MalformedPayloadError
from .models import Question

logger = logging.getLogger(__name__)

# Entities the trivia service is known to emit. Checked before the HTML5 table
# so curly quotes come out as plain ASCII quotes.
NAMED_ENTITIES = {
    "quot": '"',
    "ldquo": '"',
    "rdquo": '"',
    "apos": "'",
    "rsquo": "'",
    "lsquo": "'",
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "hellip": "…",
}

_ENTITY_PATTERN = re.compile(
    r"&(?:#(?P<dec>\d{1,8})|#[xX](?P<hex>[0-9a-fA-F]{1,6})|(?P<name>[A-Za-z][A-Za-z0-9]{0,31}));"
)

REQUIRED_STRING_FIELDS = ("category", "type", "difficulty", "question", "correct_answer")


def _is_scalar_value(code_point: int) -> bool:
    return 0 <= code_point <= 0x10FFFF and not 0xD800 <= code_point <= 0xDFFF


def _replace_entity(match: "re.Match") -> str:
    dec = match.group("dec")
    hex_digits = match.group("hex")
    if dec is not None or hex_digits is not None:
        code_point = int(dec, 10) if dec is not None else int(hex_digits, 16)
        if _is_scalar_value(code_point):
            return chr(code_point)
        return match.group(0)

    name = match.group("name")
    if name in NAMED_ENTITIES:
        return NAMED_ENTITIES[name]
    return html5.get(name + ";", match.group(0))


def html_decode(text: str) -> str:
    """
    Unescape HTML named and numeric entities.

    Runs in a single pass, so already-decoded output is never decoded again.
    Unknown names and out-of-range code points are left as they are. Never
    raises; non-string input is returned unchanged.

    Args:
        text: Text possibly containing entities like ``&quot;`` or ``&#039;``

    Returns:
        Text with every recognised entity replaced
    """
    if not isinstance(text, str) or "&" not in text:
        return text
    return _ENTITY_PATTERN.sub(_replace_entity, text)


def _require_string(record: Mapping[str, Any], key: str) -> str:
    value = record.get(key)
    if not isinstance(value, str):
        raise MalformedPayloadError(f"Question record field '{key}' must be a string, got {type(value).__name__}")
    return value


def decode_question(
    record: Mapping[str, Any],
    rng: Optional[random.Random] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> Question:
    """
    Build a Question from one raw trivia record.

    Args:
        record: Mapping with category, type, difficulty, question,
            correct_answer and incorrect_answers
        rng: Random source used to shuffle the answers; a fresh
            ``random.Random()`` is used when omitted
        id_factory: Callable producing the local question id

    Returns:
        Question with decoded text and a fixed answer order

    Raises:
        MalformedPayloadError: If the record is missing fields or has wrong types
    """
    if not isinstance(record, Mapping):
        raise MalformedPayloadError(f"Question record must be an object, got {type(record).__name__}")

    fields = {key: _require_string(record, key) for key in REQUIRED_STRING_FIELDS}

    incorrect = record.get("incorrect_answers")
    if not isinstance(incorrect, list) or not all(isinstance(answer, str) for answer in incorrect):
        raise MalformedPayloadError("Question record field 'incorrect_answers' must be a list of strings")

    correct_answer = html_decode(fields["correct_answer"])
    incorrect_answers = tuple(html_decode(answer) for answer in incorrect)

    options = list(incorrect_answers) + [correct_answer]
    (rng or random.Random()).shuffle(options)

    return Question(
        id=id_factory() if id_factory else uuid4().hex,
        category=html_decode(fields["category"]),
        difficulty=fields["difficulty"],
        type=fields["type"],
        prompt=html_decode(fields["question"]),
        correct_answer=correct_answer,
        incorrect_answers=incorrect_answers,
        answer_options=tuple(options),
    )


def decode_questions(
    records: Iterable[Mapping[str, Any]],
    rng: Optional[random.Random] = None,
) -> List[Question]:
    """
    Decode a batch of raw records, sharing one random source.

    Raises:
        MalformedPayloadError: If any record is malformed
    """
    rng = rng or random.Random()
    questions = [decode_question(record, rng) for record in records]
    logger.debug(f"Decoded {len(questions)} trivia questions")
    return questions
