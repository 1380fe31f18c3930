# INDICATE - SQL Security Utilities
# =================================
"""
SQL Security Utilities
======================
Safe identifier handling for the dynamic queries built by the statistics
engine and the columnar fuzzy matcher.

Table and column names cannot be bound as query parameters, so every name
that reaches an f-string must be validated through this module first.
Values are always bound as parameters.

Usage:
    from indicate.database.sql_security import safe_quote_identifier

    sql = f"SELECT COUNT(*) FROM {safe_quote_identifier(table_name)}"
"""

import re
import logging
from typing import List, Set
from enum import Enum

logger = logging.getLogger(__name__)


class IdentifierType(Enum):
    """Types of SQL identifiers."""
    TABLE = "table"
    COLUMN = "column"
    SCHEMA = "schema"


# Pattern for valid SQL identifiers (OMOP naming convention: snake_case)
VALID_IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

# Maximum identifier length
MAX_IDENTIFIER_LENGTH = 64

# Statement keywords that should never make up an identifier
RESERVED_KEYWORDS: Set[str] = {
    'DROP', 'DELETE', 'INSERT', 'UPDATE', 'TRUNCATE', 'ALTER', 'CREATE',
    'EXEC', 'EXECUTE', 'UNION', 'SELECT', 'FROM', 'WHERE', 'INTO',
    'GRANT', 'REVOKE', 'COMMIT', 'ROLLBACK',
}


class SQLSecurityError(Exception):
    """Raised when SQL identifier validation fails."""
    pass


def validate_identifier(
    name: str,
    identifier_type: IdentifierType = IdentifierType.COLUMN,
    allow_qualified: bool = False
) -> bool:
    """
    Validate a SQL identifier (table or column name).

    Args:
        name: The identifier to validate
        identifier_type: Type of identifier (TABLE, COLUMN, SCHEMA)
        allow_qualified: Allow schema.table or table.column notation

    Returns:
        True if identifier is safe to use, False otherwise

    Examples:
        >>> validate_identifier('measurement', IdentifierType.TABLE)
        True
        >>> validate_identifier("concept; DROP TABLE concept", IdentifierType.TABLE)
        False
    """
    if not name or not isinstance(name, str):
        return False

    if len(name) > MAX_IDENTIFIER_LENGTH:
        logger.warning(f"Identifier too long: {name[:20]}... ({len(name)} chars)")
        return False

    if '.' in name:
        if not allow_qualified:
            logger.warning(f"Qualified identifier not allowed: {name}")
            return False
        parts = name.split('.')
        if len(parts) != 2:
            return False
        return all(validate_identifier(p, identifier_type, allow_qualified=False) for p in parts)

    # Whole-word keyword check: OMOP names such as "drug_exposure_start_date"
    # legitimately contain fragments like "START"
    if name.upper() in RESERVED_KEYWORDS:
        logger.warning(f"Reserved keyword used as {identifier_type.value} identifier: {name}")
        return False

    if not VALID_IDENTIFIER_PATTERN.match(name):
        logger.warning(f"Invalid {identifier_type.value} identifier: {name!r}")
        return False

    return True


def safe_quote_identifier(
    name: str,
    identifier_type: IdentifierType = IdentifierType.COLUMN,
) -> str:
    """
    Validate and double-quote an identifier for use in a query.

    Args:
        name: The identifier
        identifier_type: Type of identifier, used in log and error messages

    Returns:
        Quoted identifier safe for SQL use

    Raises:
        SQLSecurityError: If identifier is not valid

    Examples:
        >>> safe_quote_identifier('measurement_concept_id')
        '"measurement_concept_id"'
    """
    if not validate_identifier(name, identifier_type, allow_qualified=True):
        raise SQLSecurityError(f"Invalid {identifier_type.value} identifier: {name!r}")

    return '.'.join(f'"{part}"' for part in name.split('.'))


def safe_column_list(columns: List[str]) -> str:
    """
    Create a safe comma-separated column list for SELECT.

    Args:
        columns: List of column names

    Returns:
        Safe column list string ("*" when empty)

    Raises:
        SQLSecurityError: If any column is invalid
    """
    if not columns:
        return "*"

    return ", ".join(safe_quote_identifier(col) for col in columns)


def list_tables(connection, schema: str = "main") -> Set[str]:
    """
    List the tables visible in a DuckDB schema (lowercase names).

    Args:
        connection: DuckDB connection
        schema: Schema to inspect

    Returns:
        Set of table names
    """
    rows = connection.execute(
        "SELECT table_name FROM information_schema.tables WHERE table_schema = ?",
        [schema],
    ).fetchall()
    return {row[0].lower() for row in rows}
