import re
from collections.abc import Callable
from typing import TypeVar

_UNQUOTED_NAME = re.compile(r"(\w|-)+", re.ASCII)


def quote_taxon_name(name: str) -> str:
    """
    Quote a taxon name for Nexus and Newick output.

    Names made only of ASCII word characters and hyphens are written as they are.
    Anything else is wrapped in single quotes, with embedded single quotes doubled.

    Examples:
    >>> quote_taxon_name("A_1")
    'A_1'
    >>> quote_taxon_name("A B")
    "'A B'"
    >>> quote_taxon_name("A'B")
    "'A''B'"
    >>> quote_taxon_name("café")
    "'café'"
    """
    if _UNQUOTED_NAME.fullmatch(name):
        return name
    return "'%s'" % (name.replace("'", "''"))


S = TypeVar("S")
T = TypeVar("T")


def initialized_property(func: Callable[[S], T]):
    name = func.__name__

    def getter(self: S) -> T:
        value = getattr(self, f"_{name}", None)
        if value is None:
            raise AttributeError(f"{name} is not initialized")
        return value

    def setter(self: S, value: T):
        setattr(self, f"_{name}", value)

    return property(getter, setter)


def always_true(*args):
    return True
