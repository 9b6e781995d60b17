"""
Rule data models for the Authorization Service.
"""

from typing import Dict, Optional, List, Tuple, Union
from dataclasses import dataclass, field

from pydantic import BaseModel, Field


# Object value meaning "no specific object" (domain/action-level permission)
OBJECT_NONE = "-"

POLICY_TYPE = "p"
GROUPING_TYPE = "g"

# Domain of grouping rules stated without one
DEFAULT_DOMAIN = ""

# Positional value slots of a stored rule row
ROW_WIDTH = 6


def normalize_object(obj: Optional[str]) -> str:
    """Replace an empty object with the sentinel."""
    return obj if obj else OBJECT_NONE


@dataclass(frozen=True)
class PolicyRule:
    """Grants ``subject`` the ``action`` on ``object`` within ``domain``."""
    subject: str
    domain: str
    object: str
    action: str

    def __post_init__(self):
        object.__setattr__(self, "object", normalize_object(self.object))

    def to_row(self) -> "RuleRow":
        return RuleRow.build(POLICY_TYPE, self.subject, self.domain, self.object, self.action)

    def as_list(self) -> List[str]:
        return [self.subject, self.domain, self.object, self.action]


@dataclass(frozen=True)
class GroupingRule:
    """Makes ``subject`` a member of ``group`` within ``domain``.

    Without a domain the membership belongs to the default domain ``""``
    and only applies to requests made in that domain.
    """
    subject: str
    group: str
    domain: str = DEFAULT_DOMAIN

    def __post_init__(self):
        if self.domain is None:
            object.__setattr__(self, "domain", DEFAULT_DOMAIN)

    def to_row(self) -> "RuleRow":
        if self.domain == DEFAULT_DOMAIN:
            return RuleRow.build(GROUPING_TYPE, self.subject, self.group)
        return RuleRow.build(GROUPING_TYPE, self.subject, self.group, self.domain)

    def as_list(self) -> List[str]:
        values = [self.subject, self.group]
        if self.domain != DEFAULT_DOMAIN:
            values.append(self.domain)
        return values


Rule = Union[PolicyRule, GroupingRule]


@dataclass(frozen=True)
class RuleRow:
    """One persisted rule: a type discriminator plus six value slots."""
    ptype: str
    values: Tuple[str, ...]

    @classmethod
    def build(cls, ptype: str, *values: str) -> "RuleRow":
        if len(values) > ROW_WIDTH:
            raise ValueError(f"rule has {len(values)} values, at most {ROW_WIDTH} are stored")
        padded = tuple(values) + ("",) * (ROW_WIDTH - len(values))
        return cls(ptype=ptype, values=padded)

    def columns(self) -> Dict[str, str]:
        """Column mapping for the rules table."""
        row = {"ptype": self.ptype}
        for index, value in enumerate(self.values):
            row[f"v{index}"] = value
        return row

    def to_rule(self) -> Rule:
        """Convert back to a typed rule."""
        if self.ptype == POLICY_TYPE:
            subject, domain, obj, action = self.values[:4]
            return PolicyRule(subject, domain, obj, action)

        if self.ptype == GROUPING_TYPE:
            subject, group, domain = self.values[:3]
            return GroupingRule(subject, group, domain)

        raise ValueError(f"unknown policy type: {self.ptype}")


@dataclass(frozen=True)
class AccessRequest:
    """A single access question. Never persisted."""
    subject: str
    domain: str
    object: str
    action: str

    def __post_init__(self):
        object.__setattr__(self, "object", normalize_object(self.object))


@dataclass
class EvaluationResult:
    """Result of evaluating one access request."""
    allowed: bool
    reason: Optional[str] = None
    matched_rules: List[PolicyRule] = field(default_factory=list)
    evaluation_time_ms: float = 0.0

    @property
    def explains(self) -> List[List[str]]:
        return [rule.as_list() for rule in self.matched_rules]


# API models

class PolicyRequest(BaseModel):
    """A policy to add."""
    subject: str = Field(..., description="Subject or group granted the permission")
    domain: str = Field(..., description="Domain (tenant) the permission applies to")
    object: str = Field("", description="Object; empty means no specific object")
    action: str = Field(..., description="Action to permit")


class AccessCheckRequest(BaseModel):
    """Request model for an access check."""
    subject: str = Field(..., description="Subject requesting access")
    domain: str = Field(..., description="Domain (tenant)")
    object: str = Field("", description="Object; empty means no specific object")
    action: str = Field(..., description="Action to perform")


class AccessCheckResponse(BaseModel):
    """Response model for a granted access check."""
    allowed: bool = Field(..., description="Whether the action is allowed")
    matched_rules: List[List[str]] = Field(default_factory=list, description="Policies that granted access")


class GroupMembershipRequest(BaseModel):
    """Request model for adding a subject to groups."""
    subject: str = Field(..., description="Member subject")
    groups: List[str] = Field(..., min_length=1, description="Groups to join")
    domain: Optional[str] = Field(None, description="Domain; the default domain when omitted")


class RuleListResponse(BaseModel):
    """Response model for the rule listing."""
    policies: List[List[str]]
    grouping_rules: List[List[str]]
    total: int


class MutationResponse(BaseModel):
    """Response model for rule mutations."""
    success: bool = True
    added: int = Field(0, description="Rules newly added")
