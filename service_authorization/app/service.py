"""
Authorization service core.

``AuthorizationService`` is the synchronous API the HTTP layer calls. It owns
the rule engine and the rule store for the lifetime of the process:

- Reads (``check_access``/``enforce``) evaluate the current immutable rule
  model and never take a lock.
- Writes (``add_policy``, ``add_to_group``, ``load_from_text``) are
  serialized. Each one drops rules that already exist, persists the rest in
  one transaction, and only then publishes a new rule model. A failed write
  leaves the in-memory model untouched.

Every public operation runs in a span named after it, and decisions and
mutations are written to the structured audit log.
"""

import threading
from typing import List, Optional, Iterable

from opentelemetry.trace import Tracer

from shared.config import AuthorizationSettings
from shared.errors import AccessDeniedError, EvaluationError, ParseError, StoreConnectError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.tracing import get_tracer, trace_operation

from .persistence.sql import SQLRuleStore
from .rules.definition import ModelDefinition, load_model_definition
from .rules.engine import RuleEngine, RuleModel
from .rules.loader import rules_from_text
from .rules.models import (
    AccessRequest, EvaluationResult, GroupingRule, PolicyRequest, PolicyRule, Rule,
    POLICY_TYPE, GROUPING_TYPE
)

SERVICE_NAME = "authorization"


class AuthorizationService:
    """Domain-scoped RBAC decisions over a persisted rule set."""

    def __init__(self, store: SQLRuleStore, definition: Optional[ModelDefinition] = None,
                 logger=None, tracer: Optional[Tracer] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.logger = logger if logger is not None else get_logger("authorization.service")
        self.tracer = tracer if tracer is not None else get_tracer(SERVICE_NAME)
        self.metrics = metrics
        self._write_lock = threading.Lock()

        definition = definition or load_model_definition()
        self.logger.info("Model", model=definition.sections())
        self.engine = RuleEngine(definition)

        self.store.start()
        self.load_policy()

    @classmethod
    def from_config(cls, settings: AuthorizationSettings,
                    metrics: Optional[MetricsCollector] = None) -> "AuthorizationService":
        """Build the service from settings, loading ``policy_file`` if set."""
        definition = load_model_definition(settings.model_path)
        store = SQLRuleStore.from_url(settings.database_url, settings.rules_table)
        try:
            service = cls(store, definition, metrics=metrics)
        except Exception:
            store.close()
            raise

        if settings.policy_file:
            try:
                with open(settings.policy_file, encoding="utf-8") as f:
                    content = f.read()
                service.load_from_text(content)
            except OSError as e:
                service.close()
                raise StoreConnectError(
                    "failed to read policy file",
                    {"path": settings.policy_file, "error": str(e)}
                ) from e
            except UnicodeDecodeError as e:
                service.close()
                raise ParseError("policy content is not valid UTF-8", 0) from e
            except Exception:
                service.close()
                raise

        return service

    def load_policy(self):
        """Rebuild the rule model from the store."""
        rows = self.store.load_all()
        try:
            model = RuleModel.from_rows(rows)
        except ValueError as e:
            raise StoreConnectError("failed to load stored rules", {"error": str(e)}) from e

        self._publish(model)
        self.logger.info(
            "Policy",
            policies=len(model.policies),
            grouping_rules=len(model.grouping_rules)
        )

    def close(self):
        self.store.close()

    def _publish(self, model: RuleModel):
        self.engine.publish(model)
        if self.metrics:
            self.metrics.set_rules_loaded(len(model.policies), len(model.grouping_rules))

    # Reads

    def enforce(self, subject: str, domain: str, obj: str, action: str) -> EvaluationResult:
        """Evaluate a request without raising on denial."""
        request = AccessRequest(subject, domain, obj, action)

        try:
            result = self.engine.evaluate(request)
        except EvaluationError as e:
            self.logger.error(
                "Enforce failed",
                subject=request.subject,
                domain=request.domain,
                object=request.object,
                action=request.action,
                error=str(e)
            )
            if self.metrics:
                self.metrics.record_error("evaluation_error")
            raise

        self.logger.info(
            "Enforce",
            subject=request.subject,
            domain=request.domain,
            object=request.object,
            action=request.action,
            matcher=self.engine.matcher,
            result=result.allowed,
            explains=result.explains
        )

        if self.metrics:
            self.metrics.record_decision(result.allowed, result.evaluation_time_ms / 1000)

        return result

    def check_access(self, subject: str, domain: str, obj: str, action: str) -> EvaluationResult:
        """Raise ``AccessDeniedError`` unless some policy grants the request."""
        with trace_operation(
            self.tracer, "CheckAccess",
            **{
                "authorization.subject": subject,
                "authorization.domain": domain,
                "authorization.object": obj,
                "authorization.action": action,
            }
        ) as span:
            result = self.enforce(subject, domain, obj, action)
            span.set_attribute("authorization.allowed", result.allowed)

            if not result.allowed:
                raise AccessDeniedError(subject, domain, obj, action)

            return result

    def get_policies(self) -> List[PolicyRule]:
        return self.engine.model.policies

    def get_grouping_rules(self) -> List[GroupingRule]:
        return self.engine.model.grouping_rules

    def get_roles_for_user(self, subject: str, domain: str) -> List[str]:
        return self.engine.get_roles_for_user(subject, domain)

    # Writes

    def _commit(self, rules: Iterable[Rule]) -> List[Rule]:
        """Persist and publish the rules that do not exist yet."""
        with self._write_lock:
            model = self.engine.model
            new_rules = model.missing(rules)
            if not new_rules:
                return []

            self.store.insert_batch(rule.to_row() for rule in new_rules)
            self._publish(model.with_rules(new_rules))

        if self.metrics:
            self.metrics.record_rules_added(
                POLICY_TYPE, sum(1 for rule in new_rules if isinstance(rule, PolicyRule))
            )
            self.metrics.record_rules_added(
                GROUPING_TYPE, sum(1 for rule in new_rules if isinstance(rule, GroupingRule))
            )

        return new_rules

    def add_policy(self, *requests: PolicyRequest) -> List[Rule]:
        """Add policies; an empty object means no specific object."""
        with trace_operation(self.tracer, "AddPolicy", **{"authorization.rules": len(requests)}):
            rules = [PolicyRule(req.subject, req.domain, req.object, req.action) for req in requests]
            added = self._commit(rules)

            self.logger.info(
                "Policies added",
                requested=len(rules),
                added=[rule.as_list() for rule in added]
            )
            return added

    def add_to_group(self, subject: str, *groups: str, domain: Optional[str] = None) -> List[Rule]:
        """Make ``subject`` a member of each group in ``domain`` (the default domain when omitted)."""
        with trace_operation(self.tracer, "AddToGroup", **{"authorization.subject": subject,
                                                          "authorization.rules": len(groups)}):
            rules = [GroupingRule(subject, group, domain) for group in groups]
            added = self._commit(rules)

            self.logger.info(
                "Grouping policies added",
                requested=len(rules),
                added=[rule.as_list() for rule in added]
            )
            return added

    def load_from_text(self, content: str) -> List[Rule]:
        """Load CSV rule text; rules already present are left alone."""
        with trace_operation(self.tracer, "LoadFromText"):
            rules = rules_from_text(content)
            added = self._commit(rules)

            self.logger.info(
                "Policy content loaded",
                rows=len(rules),
                added=[[rule.to_row().ptype, *rule.as_list()] for rule in added]
            )
            return added
