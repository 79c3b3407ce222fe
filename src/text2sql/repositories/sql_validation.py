"""
SQL Validation Repository.

Read-only guard applied to every statement the LLM produces, both on
first generation and after correction.

Validation Checks (in order):
1. Non-empty check
2. SELECT-Only Check: statement starts with SELECT or WITH
3. Single Statement Check: no ';' separating further statements
4. Dangerous Keywords Check: blocks INSERT, UPDATE, DELETE, DROP, ALTER, etc.

String literals and quoted identifiers are blanked before the keyword
scan, so a value like 'DELETED' does not trip the guard.

Usage:
    validator = SQLValidationRepository()
    validator.validate("SELECT COUNT(*) FROM customers")  # passes
    validator.validate("DROP TABLE customers")            # raises SQLGenerationError
"""

import re
from typing import List

from text2sql.domain.errors import SQLGenerationError
from text2sql.utils.logging import get_module_logger
from text2sql.utils.tracing import current_trace_id

logger = get_module_logger()

# Keywords that indicate a data- or schema-modifying statement
DANGEROUS_KEYWORDS = (
    "INSERT", "UPDATE", "DELETE", "DROP", "ALTER", "CREATE",
    "TRUNCATE", "GRANT", "REVOKE", "EXEC", "EXECUTE", "MERGE", "REPLACE",
)

_DANGEROUS_PATTERNS = {
    keyword: re.compile(rf"\b{keyword}\b", re.IGNORECASE) for keyword in DANGEROUS_KEYWORDS
}

# REPLACE(text, from, to) is a string function in every supported dialect
_REPLACE_FUNCTION_PATTERN = re.compile(r"\bREPLACE\s*\(", re.IGNORECASE)

_LEADING_KEYWORD_PATTERN = re.compile(r"^\s*\(*\s*(SELECT|WITH)\b", re.IGNORECASE)

# '...' literals (with '' escapes) and "..." quoted identifiers
_QUOTED_PATTERN = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"")

_LINE_COMMENT_PATTERN = re.compile(r"--[^\n]*")
_BLOCK_COMMENT_PATTERN = re.compile(r"/\*.*?\*/", re.DOTALL)


def _strip_quoted_and_comments(sql: str) -> str:
    text = _BLOCK_COMMENT_PATTERN.sub(" ", sql)
    text = _LINE_COMMENT_PATTERN.sub(" ", text)
    return _QUOTED_PATTERN.sub("''", text)


class SQLValidationRepository:
    """
    Static read-only validation of generated SQL.

    All checks are pure functions (no I/O); the first failing check
    raises SQLGenerationError with a message usable as LLM feedback.
    """

    def validate(self, sql: str) -> str:
        """
        Validate a cleaned SQL statement.

        Returns:
            The statement unchanged, for chaining

        Raises:
            SQLGenerationError: If the statement is empty or not read-only
        """
        if not sql or not sql.strip():
            raise SQLGenerationError("Model returned an empty SQL statement")

        scrubbed = _strip_quoted_and_comments(sql)

        self._check_select_only(sql, scrubbed)
        self._check_single_statement(sql, scrubbed)
        self._check_dangerous_keywords(sql, scrubbed)

        return sql

    def _check_select_only(self, sql: str, scrubbed: str) -> None:
        if not _LEADING_KEYWORD_PATTERN.match(scrubbed):
            self._reject(sql, "Query must be a SELECT statement (or a WITH ... SELECT)", "select_only_check")

    def _check_single_statement(self, sql: str, scrubbed: str) -> None:
        if ";" in scrubbed.rstrip().rstrip(";"):
            self._reject(sql, "Query must be a single statement", "single_statement_check")

    def _check_dangerous_keywords(self, sql: str, scrubbed: str) -> None:
        without_functions = _REPLACE_FUNCTION_PATTERN.sub("replace_fn(", scrubbed)
        found: List[str] = [
            keyword for keyword, pattern in _DANGEROUS_PATTERNS.items()
            if pattern.search(without_functions)
        ]
        if found:
            self._reject(sql, f"SQL contains dangerous keywords: {', '.join(found)}", "dangerous_keyword_check")

    @staticmethod
    def _reject(sql: str, message: str, step_name: str) -> None:
        logger.warning(
            "Generated SQL rejected",
            step_name=step_name,
            reason=message,
            sql=sql[:200],
            trace_id=current_trace_id(),
        )
        raise SQLGenerationError(message, details={"step_name": step_name, "sql": sql})
