"""
SQL Statement Splitter

Turns a migration's raw schema text into independently executable
statements. The store runs one statement per round trip, so a script has to
be cut at its terminators, except inside procedural blocks: a trigger body
holds its own ``;``-terminated statements and must reach the store as one
unit.
"""

import re
from typing import List

BLOCK_START = re.compile(r"\bCREATE\s+(?:TEMP\s+|TEMPORARY\s+)?TRIGGER\b", re.IGNORECASE)
DEPTH_TOKENS = re.compile(r"\b(BEGIN|CASE|END)\b", re.IGNORECASE)

# Transaction control the store cannot honour across round trips
TRANSACTION_CONTROL = re.compile(
    r"^(BEGIN(\s+(DEFERRED|IMMEDIATE|EXCLUSIVE))?(\s+TRANSACTION)?|COMMIT(\s+TRANSACTION)?|END\s+TRANSACTION)\s*;?$",
    re.IGNORECASE,
)

TERMINATOR = ";"


def strip_terminator(statement: str) -> str:
    """Remove trailing terminators and surrounding whitespace."""
    return re.sub(r"(\s*;)+\s*$", "", statement).strip()


def split_statements(sql: str) -> List[str]:
    """
    Split schema text into an ordered list of statements.

    Lines that are blank or start with ``--`` are skipped. Outside a block a
    line ending in ``;``, ignoring any trailing ``--`` comment, closes the
    current statement. A line matching ``CREATE TRIGGER`` opens a block;
    inside it ``BEGIN``/``CASE`` raise the depth and ``END`` lowers it, and
    the statement closes only when the depth is back to zero after the body
    was entered.

    Args:
        sql: Raw schema-definition text

    Returns:
        Statements with trailing terminators removed
    """
    statements: List[str] = []
    buffer: List[str] = []
    in_block = False
    entered_body = False
    depth = 0

    def flush() -> None:
        statement = strip_terminator("\n".join(buffer))
        if statement:
            statements.append(statement)
        buffer.clear()

    for line in sql.splitlines():
        stripped = line.strip()

        if not stripped or stripped.startswith("--"):
            continue

        if not in_block and not buffer and TRANSACTION_CONTROL.match(stripped):
            continue

        buffer.append(line.rstrip())
        code = _without_comment(stripped).rstrip()

        if not in_block and BLOCK_START.search(stripped):
            in_block = True
            entered_body = False
            depth = 0

        if in_block:
            for token in DEPTH_TOKENS.findall(code):
                word = token.upper()
                if word == "END":
                    depth -= 1
                else:
                    if word == "BEGIN":
                        entered_body = True
                    depth += 1

            if entered_body and depth <= 0:
                in_block = False
                flush()
        elif code.endswith(TERMINATOR):
            buffer[-1] = _without_comment(line).rstrip()
            flush()

    # A script missing its final terminator still yields its last statement
    if any(part.strip() for part in buffer):
        flush()

    return statements


def _without_comment(line: str) -> str:
    """Drop a trailing ``--`` comment that sits outside string literals."""
    in_quote = False
    for index, char in enumerate(line):
        if char == "'":
            in_quote = not in_quote
        elif char == "-" and not in_quote and line[index:index + 2] == "--":
            return line[:index]
    return line
