from __future__ import annotations

from typing import Any


class PropbindError(Exception):
    pass


class SourceUnreachable(PropbindError):
    """A declared source could not be fetched or read."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Source unreachable. source={source} reason={reason}")
        self.source = source
        self.reason = reason


class TypeMismatch(PropbindError):
    """A value is present but cannot be coerced to the declared type."""

    def __init__(self, key: str, value: str, target: Any, reason: str = "") -> None:
        target_name = getattr(target, "__name__", None) or repr(target)
        message = f"Cannot convert property. key={key} value={value!r} target={target_name}"
        if reason:
            message = f"{message} reason={reason}"
        super().__init__(message)
        self.key = key
        self.value = value
        self.target = target
        self.reason = reason


class MissingProperty(PropbindError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Missing required property. key={key}")
        self.key = key


class ReloadFailed(PropbindError):
    """
    A reload could not load its sources.

    The previously published snapshot stays active. The underlying
    SourceUnreachable is available as __cause__.
    """

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Reload failed; previous values retained. source={source} reason={reason}")
        self.source = source
        self.reason = reason


class InvalidInterface(PropbindError):
    def __init__(self, interface: type, reason: str) -> None:
        super().__init__(f"Invalid config interface. interface={interface.__qualname__} reason={reason}")
        self.interface = interface
        self.reason = reason
