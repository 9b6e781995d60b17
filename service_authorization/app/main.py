"""
Authorization service HTTP API.
"""

from typing import List, Optional

from fastapi import Query, Request
from prometheus_client import CollectorRegistry
from starlette.concurrency import run_in_threadpool

from shared.base_service import BaseService
from shared.config import AuthorizationSettings
from shared.errors import ParseError

from .service import AuthorizationService
from .rules.models import (
    AccessCheckRequest, AccessCheckResponse, GroupMembershipRequest,
    MutationResponse, PolicyRequest, RuleListResponse
)


class AuthorizationAPI(BaseService):
    """Authorization service implementation."""

    def __init__(self, settings: Optional[AuthorizationSettings] = None,
                 service: Optional[AuthorizationService] = None,
                 registry: Optional[CollectorRegistry] = None):
        super().__init__(settings, registry)

        self.service = service or AuthorizationService.from_config(self.config, metrics=self.metrics)

        self._setup_authorization_routes()

    def _setup_authorization_routes(self):
        """Set up authorization-specific routes."""

        @self.app.post("/authorization/check", response_model=AccessCheckResponse)
        def check_access(request: AccessCheckRequest):
            """Check access; responds 403 when no policy grants it."""
            result = self.service.check_access(
                request.subject, request.domain, request.object, request.action
            )
            return AccessCheckResponse(allowed=True, matched_rules=result.explains)

        @self.app.post("/authorization/policies", response_model=MutationResponse)
        def add_policies(requests: List[PolicyRequest]):
            """Add policies."""
            added = self.service.add_policy(*requests)
            return MutationResponse(added=len(added))

        @self.app.post("/authorization/groups", response_model=MutationResponse)
        def add_to_group(request: GroupMembershipRequest):
            """Add a subject to groups."""
            added = self.service.add_to_group(request.subject, *request.groups, domain=request.domain)
            return MutationResponse(added=len(added))

        @self.app.post("/authorization/policies/csv", response_model=MutationResponse)
        async def load_policies_csv(request: Request):
            """Load rules from a CSV body (``p``/``g`` rows)."""
            try:
                content = (await request.body()).decode("utf-8")
            except UnicodeDecodeError as e:
                raise ParseError("policy content is not valid UTF-8", 0) from e
            added = await run_in_threadpool(self.service.load_from_text, content)
            return MutationResponse(added=len(added))

        @self.app.get("/authorization/policies", response_model=RuleListResponse)
        def get_policies():
            """List loaded policies and grouping rules."""
            policies = [rule.as_list() for rule in self.service.get_policies()]
            grouping_rules = [rule.as_list() for rule in self.service.get_grouping_rules()]
            return RuleListResponse(
                policies=policies,
                grouping_rules=grouping_rules,
                total=len(policies) + len(grouping_rules)
            )

        @self.app.get("/authorization/stats")
        def get_stats():
            """Rule engine and rule store statistics."""
            return {
                "engine": self.service.engine.get_engine_stats(),
                "store": {"rows": self.service.store.count()}
            }

        @self.app.get("/authorization/roles")
        def get_roles(
            subject: str = Query(..., description="Member subject"),
            domain: str = Query(..., description="Domain (tenant)")
        ):
            """Groups a subject belongs to in a domain."""
            return {
                "subject": subject,
                "domain": domain,
                "roles": self.service.get_roles_for_user(subject, domain)
            }

    def _check_dependencies(self):
        """Check authorization service dependencies."""
        return {"rule_store": "ok" if self.service.store.health_check() else "error"}

    def stop(self):
        """Stop authorization service components."""
        self.service.close()
        super().stop()


def create_app():
    """Create authorization service application."""
    return AuthorizationAPI().app


def main():
    """Run the authorization service with settings from the environment."""
    AuthorizationAPI().run()


if __name__ == "__main__":
    main()
