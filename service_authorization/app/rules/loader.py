"""
Bulk rule loading from CSV text.

Rows have a variable number of columns and a leading discriminator::

    p, <subject>, <domain>, <object>, <action>
    g, <subject>, <group>[, <domain>]

A blank object in a ``p`` row means "no specific object". Blank lines are
skipped. The whole document is parsed before anything is applied, and the
first bad row aborts the load with a ``ParseError`` for that row.
"""

import csv
import io
from dataclasses import dataclass
from typing import List, Union

from shared.errors import ParseError
from .models import PolicyRule, GroupingRule, Rule, POLICY_TYPE, GROUPING_TYPE, DEFAULT_DOMAIN


@dataclass(frozen=True)
class PolicyRow:
    row: int
    rule: PolicyRule


@dataclass(frozen=True)
class GroupRow:
    row: int
    rule: GroupingRule


ParsedRow = Union[PolicyRow, GroupRow]


def _parse_policy(row: int, record: List[str]) -> PolicyRow:
    values = record[1:]
    if len(values) != 4:
        raise ParseError(
            f"policy row {row} expects subject, domain, object, action; got {len(values)} values",
            row, POLICY_TYPE, record
        )

    subject, domain, obj, action = values
    if not (subject and domain and action):
        raise ParseError(f"policy row {row} has an empty subject, domain or action", row, POLICY_TYPE, record)

    return PolicyRow(row, PolicyRule(subject, domain, obj, action))


def _parse_grouping(row: int, record: List[str]) -> GroupRow:
    values = record[1:]
    if len(values) not in (2, 3):
        raise ParseError(
            f"grouping row {row} expects subject, group and an optional domain; got {len(values)} values",
            row, GROUPING_TYPE, record
        )

    subject, group = values[0], values[1]
    if not (subject and group):
        raise ParseError(f"grouping row {row} has an empty subject or group", row, GROUPING_TYPE, record)

    domain = values[2] if len(values) == 3 else DEFAULT_DOMAIN
    return GroupRow(row, GroupingRule(subject, group, domain))


def parse_row(row: int, record: List[str]) -> ParsedRow:
    ptype = record[0]
    if ptype == POLICY_TYPE:
        return _parse_policy(row, record)
    if ptype == GROUPING_TYPE:
        return _parse_grouping(row, record)
    raise ParseError(f"unknown policy type: {ptype}", row, ptype, record)


def parse_policy_text(content: str) -> List[ParsedRow]:
    """Parse CSV rule text into typed rows."""
    reader = csv.reader(io.StringIO(content))
    rows: List[ParsedRow] = []

    try:
        for raw in reader:
            record = [value.strip() for value in raw]
            if not any(record):
                continue
            rows.append(parse_row(reader.line_num, record))
    except csv.Error as e:
        raise ParseError(f"failed to read policy content: {e}", reader.line_num) from e

    return rows


def rules_from_text(content: str) -> List[Rule]:
    return [parsed.rule for parsed in parse_policy_text(content)]
