"""
Type aliases for the text-to-SQL agent.

Provides reusable, descriptive type aliases for common patterns
to improve code readability and type safety.
"""

from typing import Any, Dict, List


# One result row: {column_name: value}
Row = Dict[str, Any]

# Materialized result set
Rows = List[Row]

# Table scores for ranking: {table_name: score}
TableScoresMap = Dict[str, float]
