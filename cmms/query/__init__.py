"""Query plans and the scoped query resolver.

Only the plan types are exported here; import the resolver from
``cmms.query.resolver`` since it depends on the auth package.
"""

from .plan import Condition, Operator, QueryPlan, Search, SortKey, SortOrder

__all__ = ["Condition", "Operator", "QueryPlan", "Search", "SortKey", "SortOrder"]
