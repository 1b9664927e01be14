"""
Everything Is An Ordeal: Path Normalizer
==========================================

Turns a user-supplied URL segment into the key an ordeal is stored under.
Only slashes are removed: no escaping, no length limit, no case folding.
"""


def normalize_path(raw: str) -> str:
    """
    Strip every "/" from `raw`.

    >>> normalize_path("/cats/")
    'cats'
    >>> normalize_path("/a/b/c")
    'abc'

    An empty or all-slash input yields "", which downstream code treats as an
    ordinary (if odd) key.
    """
    return raw.replace("/", "")
