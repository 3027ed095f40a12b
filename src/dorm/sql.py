"""
SQL text helpers.

Templates are written with ``?`` positional placeholders. Before execution the
placeholders are rewritten into the paramstyle of the target driver; string
literals, quoted identifiers and comments are left untouched.
"""
import re
from collections.abc import Callable

__all__ = [
    'quote_identifier',
    'render_placeholders',
    'escape_percent',
]

# A single scanner pass: literal | quoted identifier | comment | placeholder
_TOKEN_RE = re.compile(r"""
    '(?:[^']|'')*'
    | "(?:[^"]|"")*"
    | --[^\n]*
    | /\*.*?\*/
    | \?
""", re.VERBOSE | re.DOTALL)


def quote_identifier(identifier: str, dialect: str = 'postgresql') -> str:
    """Safely quote database identifiers.

    Parameters
        identifier: Table or column name
        dialect: Database dialect

    Returns
        Quoted identifier

    Raises
        ValueError: If dialect is unsupported
    """
    if dialect in {'postgresql', 'sqlite'}:
        return '"' + identifier.replace('"', '""') + '"'

    raise ValueError(f'Unknown dialect: {dialect}')


def render_placeholders(sql: str, render: Callable[[int], str]) -> str:
    """Replace every ``?`` placeholder with ``render(index)``.

    Indexes are 1-based and follow the textual order of the placeholders.

    >>> render_placeholders("select * from t where a = ? and b = '?'", lambda i: f'${i}')
    "select * from t where a = $1 and b = '?'"
    """
    index = 0

    def replace(match: re.Match) -> str:
        nonlocal index
        if match.group(0) != '?':
            return match.group(0)
        index += 1
        return render(index)

    return _TOKEN_RE.sub(replace, sql)


def escape_percent(sql: str) -> str:
    """Double every percent sign for drivers using the ``%s`` paramstyle.

    >>> escape_percent("select * from t where name like 'a%'")
    "select * from t where name like 'a%%'"
    """
    return sql.replace('%', '%%')


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
