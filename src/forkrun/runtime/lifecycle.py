from typing import Protocol, runtime_checkable


@runtime_checkable
class Lifecycle(Protocol):
    """Anything the child starts and the stop monitor can stop."""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...
