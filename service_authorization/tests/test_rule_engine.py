"""
Unit tests for the Authorization rule engine.
"""

import pytest
from unittest.mock import patch

from service_authorization.app.rules.definition import (
    MATCHER, load_model_definition, parse_model_definition
)
from service_authorization.app.rules.engine import RoleGraph, RuleEngine, RuleModel
from service_authorization.app.rules.models import (
    AccessRequest, GroupingRule, PolicyRule, RuleRow, OBJECT_NONE
)
from shared.errors import EvaluationError, ModelLoadError


class TestRoleGraph:
    """Test cases for RoleGraph."""

    def test_subject_reaches_itself(self):
        """A subject with no edges only reaches itself."""
        graph = RoleGraph()

        assert graph.roles_for("alice", "tenant1") == {"alice"}

    def test_transitive_membership(self):
        """Test membership through several groups."""
        graph = RoleGraph()
        graph.add_link("alice", "editors", "tenant1")
        graph.add_link("editors", "staff", "tenant1")

        assert graph.roles_for("alice", "tenant1") == {"alice", "editors", "staff"}

    def test_membership_is_domain_scoped(self):
        """Edges of one domain are invisible in another."""
        graph = RoleGraph()
        graph.add_link("alice", "editors", "tenant1")

        assert graph.roles_for("alice", "tenant2") == {"alice"}

    def test_membership_without_domain_stays_in_default_domain(self):
        """Edges without a domain only apply to requests in the default domain."""
        graph = RoleGraph()
        graph.add_link("alice", "admins")

        assert graph.roles_for("alice", "") == {"alice", "admins"}
        assert graph.roles_for("alice", "tenant1") == {"alice"}

    def test_cycles_terminate(self):
        """Cyclic memberships do not loop forever."""
        graph = RoleGraph()
        graph.add_link("a", "b", "t")
        graph.add_link("b", "c", "t")
        graph.add_link("c", "a", "t")

        assert graph.roles_for("a", "t") == {"a", "b", "c"}


class TestRuleModel:
    """Test cases for RuleModel."""

    @pytest.fixture
    def model(self):
        return RuleModel(
            [
                PolicyRule("alice", "tenant1", "doc1", "read"),
                PolicyRule("editors", "tenant1", "doc1", "write"),
            ],
            [GroupingRule("alice", "editors", "tenant1")]
        )

    def test_duplicates_collapse(self):
        """Identical tuples are stored once."""
        rule = PolicyRule("alice", "tenant1", "doc1", "read")
        model = RuleModel([rule, rule])

        assert model.policies == [rule]
        assert len(model) == 1

    def test_missing_filters_existing_and_repeated_rules(self, model):
        """missing() returns only new rules, each once."""
        existing = PolicyRule("alice", "tenant1", "doc1", "read")
        new = PolicyRule("bob", "tenant1", "doc1", "read")
        edge = GroupingRule("bob", "editors", "tenant1")

        assert model.missing([existing, new, new, edge]) == [new, edge]

    def test_with_rules_returns_new_model(self, model):
        """with_rules leaves the existing model untouched."""
        rule = PolicyRule("bob", "tenant1", "doc1", "read")

        updated = model.with_rules([rule])

        assert updated.has_rule(rule)
        assert not model.has_rule(rule)
        assert len(updated) == len(model) + 1

    def test_matching_policies_direct_and_inherited(self, model):
        """Matching follows group membership within the domain."""
        direct = model.matching_policies(AccessRequest("alice", "tenant1", "doc1", "read"))
        inherited = model.matching_policies(AccessRequest("alice", "tenant1", "doc1", "write"))

        assert direct == [PolicyRule("alice", "tenant1", "doc1", "read")]
        assert inherited == [PolicyRule("editors", "tenant1", "doc1", "write")]

    def test_matching_policies_requires_exact_domain_object_action(self, model):
        """Domain, object and action must all match."""
        assert model.matching_policies(AccessRequest("alice", "tenant2", "doc1", "read")) == []
        assert model.matching_policies(AccessRequest("alice", "tenant1", "doc2", "read")) == []
        assert model.matching_policies(AccessRequest("alice", "tenant1", "doc1", "delete")) == []

    def test_from_rows(self):
        """Stored rows convert back into typed rules."""
        rows = [
            RuleRow.build("p", "alice", "tenant1", "-", "read"),
            RuleRow.build("g", "alice", "admins"),
        ]

        model = RuleModel.from_rows(rows)

        assert model.policies == [PolicyRule("alice", "tenant1", OBJECT_NONE, "read")]
        assert model.grouping_rules == [GroupingRule("alice", "admins", "")]

    def test_from_rows_rejects_unknown_type(self):
        """Unknown stored rule types are an error."""
        with pytest.raises(ValueError, match="unknown policy type: x"):
            RuleModel.from_rows([RuleRow.build("x", "a", "b")])


class TestRuleEngine:
    """Test cases for RuleEngine."""

    @pytest.fixture
    def rule_engine(self):
        """Create RuleEngine instance."""
        engine = RuleEngine(load_model_definition())
        engine.publish(RuleModel(
            [
                PolicyRule("alice", "tenant1", "doc1", "read"),
                PolicyRule("editors", "tenant1", "doc1", "write"),
                PolicyRule("auditors", "tenant1", "", "audit"),
            ],
            [
                GroupingRule("alice", "editors", "tenant1"),
                GroupingRule("bob", "auditors", "tenant1"),
            ]
        ))
        return engine

    def test_evaluate_allowed(self, rule_engine):
        """Test successful evaluation with matched rules."""
        result = rule_engine.evaluate(AccessRequest("alice", "tenant1", "doc1", "write"))

        assert result.allowed is True
        assert result.matched_rules == [PolicyRule("editors", "tenant1", "doc1", "write")]
        assert result.explains == [["editors", "tenant1", "doc1", "write"]]
        assert result.evaluation_time_ms >= 0

    def test_evaluate_denied(self, rule_engine):
        """Test evaluation when no policy matches."""
        result = rule_engine.evaluate(AccessRequest("bob", "tenant1", "doc1", "read"))

        assert result.allowed is False
        assert result.matched_rules == []
        assert result.reason == "No matching policy"

    def test_evaluate_empty_object_uses_sentinel(self, rule_engine):
        """Empty and sentinel objects are the same request."""
        empty = rule_engine.evaluate(AccessRequest("bob", "tenant1", "", "audit"))
        sentinel = rule_engine.evaluate(AccessRequest("bob", "tenant1", OBJECT_NONE, "audit"))

        assert empty.allowed is True
        assert sentinel.allowed is True

    def test_evaluate_failure_raises_evaluation_error(self, rule_engine):
        """Infrastructure failures are not reported as denials."""
        with patch.object(RuleModel, "matching_policies", side_effect=RuntimeError("boom")):
            with pytest.raises(EvaluationError) as exc_info:
                rule_engine.evaluate(AccessRequest("alice", "tenant1", "doc1", "read"))

        assert exc_info.value.code == "EVALUATION_ERROR"
        assert exc_info.value.details["error"] == "boom"

    def test_get_roles_for_user(self, rule_engine):
        """Roles exclude the subject itself."""
        assert rule_engine.get_roles_for_user("alice", "tenant1") == ["editors"]
        assert rule_engine.get_roles_for_user("alice", "tenant2") == []

    def test_get_engine_stats(self, rule_engine):
        """Test engine statistics."""
        stats = rule_engine.get_engine_stats()

        assert stats["total_rules"] == 5
        assert stats["policies"] == 3
        assert stats["grouping_rules"] == 2
        assert stats["domains"] == ["tenant1"]


class TestModelDefinition:
    """Test cases for the matching model definition."""

    VALID = """
[request_definition]
r = sub, dom, obj, act

[policy_definition]
p = sub, dom, obj, act

[role_definition]
g = _, _, _

[policy_effect]
e = some(where (p.eft == allow))

[matchers]
m = g(r.sub, p.sub, r.dom) && r.dom == p.dom && r.obj == p.obj && r.act == p.act
"""

    def test_bundled_definition_loads(self):
        """The bundled model.conf is the supported definition."""
        definition = load_model_definition()

        assert definition.matcher == MATCHER
        assert definition.request_fields == ("sub", "dom", "obj", "act")

    def test_whitespace_is_not_significant(self):
        """Spacing differences do not change the definition."""
        content = self.VALID.replace("r.dom == p.dom", "r.dom==p.dom")

        assert parse_model_definition(content).matcher.replace(" ", "") == MATCHER.replace(" ", "")

    def test_missing_section(self):
        """A missing section is a model load error."""
        content = self.VALID.replace("[matchers]\n", "").replace("m = ", "# m = ")

        with pytest.raises(ModelLoadError):
            parse_model_definition(content)

    def test_unsupported_matcher(self):
        """A different matcher expression is rejected."""
        content = self.VALID.replace("g(r.sub, p.sub, r.dom)", "r.sub == p.sub")

        with pytest.raises(ModelLoadError) as exc_info:
            parse_model_definition(content)

        assert exc_info.value.details["key"] == "m"

    def test_unsupported_effect(self):
        """Deny effects are not supported."""
        content = self.VALID.replace(
            "some(where (p.eft == allow))",
            "some(where (p.eft == allow)) && !some(where (p.eft == deny))"
        )

        with pytest.raises(ModelLoadError):
            parse_model_definition(content)

    def test_malformed_document(self):
        """Unparseable documents are a model load error."""
        with pytest.raises(ModelLoadError):
            parse_model_definition("m = no section header")

    def test_load_from_path(self, tmp_path):
        """Definitions can be loaded from a file."""
        path = tmp_path / "model.conf"
        path.write_text(self.VALID)

        assert load_model_definition(str(path)).matcher == MATCHER

    def test_load_missing_file(self, tmp_path):
        """A missing file is a model load error."""
        with pytest.raises(ModelLoadError):
            load_model_definition(str(tmp_path / "missing.conf"))
