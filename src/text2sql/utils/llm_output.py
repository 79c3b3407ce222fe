"""
Helpers for turning raw LLM text into usable values.

Models wrap answers in markdown fences, prepend labels such as
"SQL:" or add prose around a JSON object; these helpers undo that.
"""

import json
import re
from typing import Any, Dict, Optional

_FENCE_PATTERN = re.compile(r'^```[a-zA-Z]*\s*\n?(.*?)\n?```$', re.DOTALL)
_INNER_FENCE_PATTERN = re.compile(r'```[a-zA-Z]*\s*\n?(.*?)\n?```', re.DOTALL)
_SQL_LABEL_PATTERN = re.compile(r'^(?:corrected\s+sql|sql\s+query|sql)\s*:\s*', re.IGNORECASE)


def strip_markdown(text: str) -> str:
    """
    Strip a markdown code fence from text.

    Handles:
    - ```json\\n{...}\\n```
    - ```sql\\nSELECT ...```
    - a fenced block embedded in surrounding prose
    """
    cleaned = text.strip()

    match = _FENCE_PATTERN.match(cleaned)
    if match:
        return match.group(1).strip()

    inner = _INNER_FENCE_PATTERN.search(cleaned)
    if inner:
        return inner.group(1).strip()

    return cleaned


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse a JSON object from text that may contain extra content.

    Tries the whole text first, then the span between the first '{'
    and the last '}'.
    """
    cleaned = strip_markdown(text)
    if not cleaned:
        return None

    try:
        data = json.loads(cleaned)
        return data if isinstance(data, dict) else None
    except json.JSONDecodeError:
        pass

    start = cleaned.find('{')
    end = cleaned.rfind('}')
    if start == -1 or end == -1 or end <= start:
        return None

    try:
        data = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def clean_sql(text: str) -> str:
    """
    Normalize an LLM SQL answer to a bare statement.

    Removes code fences, a leading "SQL:" / "Corrected SQL:" label,
    surrounding whitespace and one trailing semicolon.
    """
    sql = strip_markdown(text)
    sql = _SQL_LABEL_PATTERN.sub("", sql).strip()
    if sql.endswith(";"):
        sql = sql[:-1].rstrip()
    return sql
