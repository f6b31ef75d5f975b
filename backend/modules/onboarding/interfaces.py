"""
Onboarding module interfaces.
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class ILocalFlagStore(Protocol):
    """
    Key/value store standing in for browser local storage.

    Values are strings, as in the browser. Implementations raise OSError
    (or ValueError for corrupt content) when the store cannot be used.
    """

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...
