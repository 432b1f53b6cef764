"""
Helpers for cleaning generated lesson Markdown.

Lessons may open with a fenced ```json metadata block, carry a "## Quiz"
section and contain ``:::practice-problem`` containers. These functions pull
those pieces apart so the body can be stored and rendered on its own.
"""
import re
import json
import math
from typing import Any, Dict, List, Optional, Tuple

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
BOM = "\ufeff"
METADATA_REGEX = re.compile(r"^\s*```json\s*\r?\n([\s\S]*?)```", re.IGNORECASE)
QUIZ_SECTION_REGEX = re.compile(
    r"(^|\n)##\s+Quiz[^\n]*\n([\s\S]*?)(?=(\n##\s)|(\n<details)|\Z)", re.IGNORECASE
)
QUIZ_LINE_REGEX = re.compile(r"^(?:\d+\.\s+|-+\s+)(.+)")
DETAILS_REGEX = re.compile(r"<details[\s\S]*?</details>", re.IGNORECASE)
PRACTICE_SECTION_REGEX = re.compile(
    r"(^|\n)##\s+Practice Problems[^\n]*\n([\s\S]*?)(?=(\n##\s)|\Z)", re.IGNORECASE
)
PRACTICE_PROBLEM_REGEX = re.compile(
    r":::practice-problem\s*\n([\s\S]*?)\n:::\s*\n([\s\S]*?)(?=\n:::practice-problem|\n##\s|\Z)",
    re.IGNORECASE,
)

STRING_LIST_KEYS = ("bulletSummary", "objectives", "tags", "keyTakeaways", "sections")
RESERVED_KEYS = {"title", "summary", "readingTimeMinutes", "quiz", *STRING_LIST_KEYS}
MAX_DECODE_PASSES = 5


def _clean_text(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return CONTROL_CHARS.sub("", value).replace(BOM, "").strip()


def _clean_string_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    cleaned = [text for text in (_clean_text(item) for item in value) if text]
    return cleaned or None


def _clean_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _clean_unknown(value: Any) -> Any:
    """Recursively clean a JSON value; None means "drop it"."""
    if isinstance(value, str):
        return _clean_text(value) or None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, list):
        cleaned = [item for item in (_clean_unknown(v) for v in value) if item is not None]
        return cleaned or None
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            cleaned = _clean_unknown(item)
            if cleaned is not None:
                out[str(key)] = cleaned
        return out or None
    return None


def _clean_quiz_items(value: Any) -> Optional[List[Dict[str, str]]]:
    if not isinstance(value, list):
        return None
    items = []
    for entry in value:
        if isinstance(entry, str):
            question = _clean_text(entry)
            if question:
                items.append({"question": question})
        elif isinstance(entry, dict):
            question = (
                _clean_text(entry.get("question"))
                or _clean_text(entry.get("prompt"))
                or _clean_text(entry.get("q"))
            )
            if not question:
                continue
            item = {"question": question}
            for key in ("answer", "explanation", "difficulty", "id"):
                text = _clean_text(entry.get(key))
                if text:
                    item[key] = text
            items.append(item)
    return items or None


def sanitize_metadata(raw: Any) -> Optional[Dict[str, Any]]:
    """Keep the known metadata keys in their expected shapes; clean the rest."""
    if not isinstance(raw, dict):
        return None
    metadata: Dict[str, Any] = {}

    for key in ("title", "summary"):
        text = _clean_text(raw.get(key))
        if text:
            metadata[key] = text
    for key in STRING_LIST_KEYS:
        items = _clean_string_list(raw.get(key))
        if items:
            metadata[key] = items

    reading_time = _clean_number(raw.get("readingTimeMinutes"))
    if reading_time is not None:
        metadata["readingTimeMinutes"] = max(1, math.floor(reading_time + 0.5))

    quiz = _clean_quiz_items(raw.get("quiz"))
    if quiz:
        metadata["quiz"] = quiz

    for key, value in raw.items():
        if key in RESERVED_KEYS:
            continue
        cleaned = _clean_unknown(value)
        if cleaned is not None:
            metadata[key] = cleaned

    return metadata or None


def normalize_markdown(markdown: Any) -> str:
    text = markdown if isinstance(markdown, str) else ("" if markdown is None else str(markdown))
    if text.startswith(BOM):
        text = text[1:]
    return text.replace("\r\n", "\n")


def extract_lesson_metadata(markdown: Any) -> Dict[str, Any]:
    """
    Split a leading ```json metadata block from a lesson.

    The block only counts when its braces balance and it parses as JSON, so a
    half-streamed block is left in the body untouched.

    Returns:
        dict with ``metadata``, ``metadata_block``, ``markdown_without_metadata``
        and ``normalized_markdown``
    """
    normalized = normalize_markdown(markdown)
    untouched = {
        "metadata": None,
        "metadata_block": None,
        "markdown_without_metadata": normalized.lstrip(),
        "normalized_markdown": normalized.lstrip(),
    }

    match = METADATA_REGEX.match(normalized)
    if not match:
        return untouched

    raw_metadata = match.group(1).strip()
    open_braces = raw_metadata.count("{")
    if open_braces == 0 or open_braces != raw_metadata.count("}"):
        return untouched

    try:
        parsed = json.loads(raw_metadata)
    except ValueError:
        return untouched

    return {
        "metadata": sanitize_metadata(parsed),
        "metadata_block": match.group(0),
        "markdown_without_metadata": normalized[match.end():].lstrip(),
        "normalized_markdown": normalized.lstrip(),
    }


def strip_lesson_metadata(markdown: Any) -> str:
    return extract_lesson_metadata(markdown)["markdown_without_metadata"]


def decode_escapes(text: str) -> str:
    """Turn literal ``\\r\\n`` and ``\\n`` sequences into newlines until stable.

    ``\\t`` is left alone so LaTeX such as ``\\tan`` and ``\\theta`` survives.
    """
    if not text:
        return ""
    previous, current = None, text
    passes = 0
    while current != previous and passes < MAX_DECODE_PASSES:
        previous = current
        current = current.replace("\r\n", "\n").replace("\\r\\n", "\n").replace("\\n", "\n")
        passes += 1
    return current


def sanitize_lesson_body(markdown: Any) -> str:
    """Body ready for storage: metadata stripped, escapes decoded, control chars removed."""
    if not markdown:
        return ""
    body = decode_escapes(strip_lesson_metadata(markdown))
    return CONTROL_CHARS.sub("", body)


def _questions_from_block(block: str) -> List[Dict[str, str]]:
    questions = []
    current: List[str] = []
    for raw_line in re.split(r"\n+", block):
        line = raw_line.strip()
        if not line:
            continue
        question_match = QUIZ_LINE_REGEX.match(line)
        if question_match:
            if current:
                questions.append({"question": "\n".join(current).strip()})
                current = []
            current.append(question_match.group(1))
        elif current:
            current.append(line)
    if current:
        questions.append({"question": "\n".join(current).strip()})
    return questions


def extract_quiz_section(markdown: Optional[str]) -> Tuple[List[Dict[str, str]], str]:
    """Return the "## Quiz" questions and the body without that section or <details> blocks."""
    if not markdown:
        return [], ""
    normalized = markdown.replace("\r\n", "\n")
    match = QUIZ_SECTION_REGEX.search(normalized)
    if not match:
        return [], normalized

    questions = _questions_from_block(match.group(2) or "")
    body = normalized[:match.start()] + normalized[match.end():]
    return questions, DETAILS_REGEX.sub("", body).strip()


def extract_practice_problems(markdown: Optional[str]) -> Tuple[List[Dict[str, str]], str]:
    """Return ``{problem, solution}`` pairs and the body with the containers removed.

    Any "## Practice Problems" section is dropped first.
    """
    if not markdown:
        return [], ""
    normalized = PRACTICE_SECTION_REGEX.sub(r"\1", markdown.replace("\r\n", "\n"))

    problems = []
    parts = []
    last_index = 0
    for match in PRACTICE_PROBLEM_REGEX.finditer(normalized):
        problem = match.group(1).strip()
        if problem:
            problems.append({"problem": problem, "solution": match.group(2).strip()})
        if match.start() > last_index:
            parts.append(normalized[last_index:match.start()])
        last_index = match.end()

    if last_index < len(normalized):
        parts.append(normalized[last_index:])
    return problems, "".join(parts).strip()
