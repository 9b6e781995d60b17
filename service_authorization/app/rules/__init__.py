"""
Rules package.

Defines the rule model and matching engine used by the Authorization
Service. Policies (``p`` rules) grant a subject an action on an object
within a domain; grouping rules (``g`` rules) make a subject a member of a
group so that it inherits the group's policies.

Modules of interest:
- models: Data classes for rules, stored rows, requests and results.
- engine: Role graph, immutable rule model and the evaluation algorithm.
- definition: Loader for the declarative matching model (model.conf).
- loader: CSV parsing for bulk rule loads.
"""
