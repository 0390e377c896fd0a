"""Query builders."""

from quarry.query.composer import QueryComposer, QueryState
from quarry.query.conditions import ConditionComposer
from quarry.query.predicates import Predicate, PredicateBuilder
from quarry.query.writes import DeleteQuery, InsertQuery, UpdateQuery

__all__ = [
    "ConditionComposer",
    "DeleteQuery",
    "InsertQuery",
    "Predicate",
    "PredicateBuilder",
    "QueryComposer",
    "QueryState",
    "UpdateQuery",
]
