# INDICATE Database Module
# ========================
"""
DuckDB access helpers shared by the statistics engine and the fuzzy matcher.

- connect: open an OMOP DuckDB file (used by the CLI scripts)
- sql_security: identifier validation for dynamically built queries
"""

from .connection import connect
from .sql_security import (
    IdentifierType,
    SQLSecurityError,
    validate_identifier,
    safe_quote_identifier,
    safe_column_list,
    list_tables,
)

__all__ = [
    'connect',
    'IdentifierType',
    'SQLSecurityError',
    'validate_identifier',
    'safe_quote_identifier',
    'safe_column_list',
    'list_tables',
]
