import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from dorm.strategy import dialects, get_db_strategy, strategy_class

__all__ = [
    'DatabaseOptions',
    'DormOptions',
]


def scriptname() -> str | None:
    """Name of the running script, without extension."""
    argv0 = sys.argv[0] if sys.argv else ''
    return Path(argv0).stem or None


@dataclass
class DormOptions:
    """Options for the mapping layer and query helpers.

    - array_support: Bind key collections as one array parameter
      (``= ANY(?)``). Turn it off for stores without array parameters such as
      SQLite; collections are then expanded into ``IN (?, ?, ...)``. ``None``
      lets the store strategy of each connection decide.
    - quote_identifiers: Double-quote generated table and column names.
    """
    array_support: bool | None = True
    quote_identifiers: bool = False

    def uses_arrays(self, cn: Any) -> bool:
        """Whether collections bind as one array parameter on ``cn``."""
        if self.array_support is None:
            return get_db_strategy(cn).supports_arrays
        return self.array_support


@dataclass
class DatabaseOptions:
    """Options

    supported driver names: `postgresql`, `sqlite`
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None

    def __post_init__(self):
        if self.drivername not in dialects():
            raise ValueError(f'drivername must be one of: {dialects()}')
        self.appname = self.appname or scriptname() or 'python_console'
        strategy_class(self.drivername).validate_options(self)

    @classmethod
    def from_dict(cls, values: dict[str, Any], **kw: Any) -> 'DatabaseOptions':
        """Build options from a mapping, ignoring unknown keys.

        Keyword arguments override mapping values.
        """
        names = {f.name for f in fields(cls)}
        merged = {**values, **kw}
        return cls(**{k: v for k, v in merged.items() if k in names})
