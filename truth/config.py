"""
Store options.

Options are plain constructor keywords. They are normalised into a frozen
``StoreOptions`` so that ``Store.clone`` can inherit whatever the caller does not
override.
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Optional


@dataclass(frozen=True)
class StoreOptions:
    """
    Configuration carried by a store and inherited by its clones.

    Attributes:
        key: Field name used to reject duplicate adds, as the default merge dedup
            key, and to resolve bare values in ``remove``. ``None`` disables all
            key based matching.
        check_cycles: Reject merges that would make a store follow itself.
    """

    key: Optional[str] = None
    check_cycles: bool = True

    def derive(self, **overrides: Any) -> "StoreOptions":
        """Return a copy with ``overrides`` applied; unknown names raise TypeError."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise TypeError(f"Unknown store option(s): {', '.join(unknown)}")
        return replace(self, **overrides)
