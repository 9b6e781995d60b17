"""
Rule evaluation engine for the Authorization Service.
"""

import time
from typing import Dict, Any, Optional, List, Iterable, Set, Tuple

from shared.logging import get_logger
from shared.errors import EvaluationError
from .definition import ModelDefinition
from .models import (
    PolicyRule, GroupingRule, Rule, RuleRow, AccessRequest, EvaluationResult, DEFAULT_DOMAIN
)


class RoleGraph:
    """Directed membership edges (subject -> group), partitioned by domain.

    Edges of one domain are invisible to requests made in any other.
    """

    def __init__(self):
        self._links: Dict[str, Dict[str, Set[str]]] = {}

    def add_link(self, subject: str, group: str, domain: str = DEFAULT_DOMAIN):
        self._links.setdefault(domain, {}).setdefault(subject, set()).add(group)

    def roles_for(self, subject: str, domain: str) -> Set[str]:
        """All names reachable from ``subject`` in ``domain``, itself included."""
        links = self._links.get(domain, {})

        reached = {subject}
        pending = [subject]
        while pending:
            current = pending.pop()
            for group in links.get(current, ()):
                if group not in reached:
                    reached.add(group)
                    pending.append(group)

        return reached


class RuleModel:
    """Immutable snapshot of every loaded policy and grouping rule.

    Mutation never happens in place: ``with_rules`` returns a new model so
    readers holding the old one keep a consistent view.
    """

    def __init__(self, policies: Iterable[PolicyRule] = (), grouping_rules: Iterable[GroupingRule] = ()):
        # dicts keep insertion order and give O(1) existence checks
        self._policies: Dict[PolicyRule, None] = dict.fromkeys(policies)
        self._grouping_rules: Dict[GroupingRule, None] = dict.fromkeys(grouping_rules)

        # (domain, object, action) -> subject -> rule
        self._policy_index: Dict[Tuple[str, str, str], Dict[str, PolicyRule]] = {}
        for rule in self._policies:
            self._policy_index.setdefault((rule.domain, rule.object, rule.action), {})[rule.subject] = rule

        self.role_graph = RoleGraph()
        for rule in self._grouping_rules:
            self.role_graph.add_link(rule.subject, rule.group, rule.domain)

    @classmethod
    def from_rows(cls, rows: Iterable[RuleRow]) -> "RuleModel":
        policies: List[PolicyRule] = []
        grouping_rules: List[GroupingRule] = []
        for row in rows:
            rule = row.to_rule()
            if isinstance(rule, PolicyRule):
                policies.append(rule)
            else:
                grouping_rules.append(rule)
        return cls(policies, grouping_rules)

    @property
    def policies(self) -> List[PolicyRule]:
        return list(self._policies)

    @property
    def grouping_rules(self) -> List[GroupingRule]:
        return list(self._grouping_rules)

    def __len__(self) -> int:
        return len(self._policies) + len(self._grouping_rules)

    def has_rule(self, rule: Rule) -> bool:
        if isinstance(rule, PolicyRule):
            return rule in self._policies
        return rule in self._grouping_rules

    def missing(self, rules: Iterable[Rule]) -> List[Rule]:
        """Rules not yet in the model, in order, duplicates collapsed."""
        return [rule for rule in dict.fromkeys(rules) if not self.has_rule(rule)]

    def with_rules(self, rules: Iterable[Rule]) -> "RuleModel":
        """Return a new model with ``rules`` merged in."""
        policies = self.policies
        grouping_rules = self.grouping_rules
        for rule in rules:
            if isinstance(rule, PolicyRule):
                policies.append(rule)
            else:
                grouping_rules.append(rule)
        return RuleModel(policies, grouping_rules)

    def matching_policies(self, request: AccessRequest) -> List[PolicyRule]:
        candidates = self._policy_index.get((request.domain, request.object, request.action))
        if not candidates:
            return []

        roles = self.role_graph.roles_for(request.subject, request.domain)
        return [rule for subject, rule in candidates.items() if subject in roles]


class RuleEngine:
    """Evaluates access requests against the current rule model."""

    def __init__(self, definition: ModelDefinition, model: Optional[RuleModel] = None):
        self.logger = get_logger("authorization.rule_engine")
        self.definition = definition
        self.model = model if model is not None else RuleModel()

    @property
    def matcher(self) -> str:
        return self.definition.matcher

    def publish(self, model: RuleModel):
        """Swap in a new rule model."""
        self.model = model
        self.logger.debug("Rule model published", total_rules=len(model))

    def evaluate(self, request: AccessRequest) -> EvaluationResult:
        """Evaluate one request. Granted iff any policy matches."""
        start_time = time.time()
        model = self.model

        try:
            matched = model.matching_policies(request)
        except Exception as e:
            raise EvaluationError(
                "failed to check permission",
                {
                    "subject": request.subject,
                    "domain": request.domain,
                    "object": request.object,
                    "action": request.action,
                    "error": str(e),
                }
            ) from e

        if matched:
            reason = f"{len(matched)} matching polic{'y' if len(matched) == 1 else 'ies'}"
        else:
            reason = "No matching policy"

        return EvaluationResult(
            allowed=bool(matched),
            reason=reason,
            matched_rules=matched,
            evaluation_time_ms=(time.time() - start_time) * 1000
        )

    def get_roles_for_user(self, subject: str, domain: str) -> List[str]:
        """Groups ``subject`` belongs to in ``domain``, directly or transitively."""
        roles = self.model.role_graph.roles_for(subject, domain)
        roles.discard(subject)
        return sorted(roles)

    def get_engine_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        model = self.model
        return {
            "total_rules": len(model),
            "policies": len(model.policies),
            "grouping_rules": len(model.grouping_rules),
            "domains": sorted({rule.domain for rule in model.policies}),
        }
