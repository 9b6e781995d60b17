"""
Authorization Service package.

This package decides whether a subject may perform an action on an object
within a domain (tenant). It provides:

- app.service: Synchronous API (check, add policy, add to group, CSV load).
- app.rules: Rule model, role graph, matching engine and CSV loader.
- app.persistence: SQL storage for rule rows.
- app.main: HTTP surface for checks, mutations and health.

Guidelines:
- Decisions are allow-only; anything not granted is denied.
- Every mutation is persisted before it becomes visible to checks.
- Keep evaluation deterministic and observable (spans + audit logs).
"""
