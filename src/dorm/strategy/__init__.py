"""
Store strategies, one per SQL dialect.

A strategy owns everything dorm does differently per store: placeholder
style, typed null casts, generated key retrieval, array parameters and the
driver's adapter table. Strategies are stateless and shared per dialect.
"""
from functools import lru_cache

from dorm.strategy.base import _STRATEGY_REGISTRY
from dorm.strategy.base import StoreStrategy as StoreStrategy
from dorm.strategy.base import register_strategy as register_strategy
from dorm.strategy.postgres import PostgresStrategy as PostgresStrategy
from dorm.strategy.sqlite import SQLiteStrategy as SQLiteStrategy
from dorm.utils import get_dialect_name


def dialects() -> list[str]:
    """Names of the registered dialects."""
    return list(_STRATEGY_REGISTRY)


def strategy_class(dialect: str) -> type[StoreStrategy]:
    """Strategy class registered for ``dialect``.

    Raises
        ValueError: If no strategy is registered for the dialect
    """
    try:
        return _STRATEGY_REGISTRY[dialect]
    except KeyError:
        raise ValueError(f'Unsupported dialect: {dialect}. Available: {dialects()}') from None


@lru_cache(maxsize=8)
def get_strategy(dialect: str) -> StoreStrategy:
    """Shared strategy instance for a dialect name."""
    return strategy_class(dialect)()


def get_db_strategy(cn) -> StoreStrategy:
    """Strategy for the dialect of a connection."""
    return get_strategy(get_dialect_name(cn))
