"""
Store Registry - process-wide counter for store names and identity namespaces.

Every store asks the registry for a fresh key when it is created. Keys are never
reused while the process lives, so two live stores can never share an identity
namespace even when rows pass through both of them.

Implementation:
    - get_registry(): lazy singleton pattern
    - StoreRegistry: owns _key_counter, starts at zero
    - _reset_registry(): testing hook
"""


class StoreRegistry:
    """
    Monotonic key generator shared by every store in the process.

    Keys have the form ``{prefix}${counter}``. The counter starts at zero and is
    incremented before use, so the first key is ``truth$1``.
    """

    def __init__(self):
        self._key_counter = 0

    @property
    def issued(self) -> int:
        return self._key_counter

    def _gen_key(self, prefix: str) -> str:
        """
        Generate unique key with prefix.

        Used for default store names and for identity-table namespaces.
        """
        self._key_counter += 1
        return f"{prefix}${self._key_counter}"


_registry = None


def get_registry() -> StoreRegistry:
    """
    Get or create the registry instance.

    Lazy singleton pattern: creates on first access, reuses thereafter.
    Testing can reset via _reset_registry().
    """
    global _registry
    if _registry is None:
        _registry = StoreRegistry()
    return _registry


def _reset_registry() -> None:
    """
    Reset the registry for testing purposes.

    Stores created before the reset keep their keys; only tests that assert on
    generated names should rely on this.
    """
    global _registry
    _registry = None
