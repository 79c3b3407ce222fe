"""Character-limit guards applied before calling external model APIs."""

from typing import Iterable, Optional


def check_char_limit(text: str, max_chars: int, label: str = "Input") -> None:
    """
    Raise ValueError when ``text`` is longer than ``max_chars``.

    Example:
        >>> check_char_limit("Hello", max_chars=100)  # OK
        >>> check_char_limit("A" * 1000, max_chars=100)  # Raises ValueError
    """
    if len(text) > max_chars:
        raise ValueError(
            f"{label} too large: {len(text)} characters, maximum allowed: {max_chars}"
        )


def check_total_chars(prompt: str, system_prompt: Optional[str], max_chars: int) -> None:
    """Validate the combined size of a prompt and its optional system prompt."""
    total = len(prompt) + (len(system_prompt) if system_prompt else 0)
    if total > max_chars:
        raise ValueError(
            f"Total input too large: {total} characters, maximum allowed: {max_chars}"
        )


def check_batch_chars(texts: Iterable[str], max_chars_per_text: int) -> None:
    """Validate every text of a batch; the error names the offending index."""
    for i, text in enumerate(texts):
        check_char_limit(text, max_chars_per_text, label=f"Text in batch at index {i}")
