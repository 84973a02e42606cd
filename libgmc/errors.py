"""libgmc.errors

Exceptions raised while reading containers, model packages and VIF streams.

Every failure aborts only the unit being decoded (one container, one
package, one submodel stream). Messages carry hex offsets and the
expected/found tags so the offending bytes can be located.
"""

from __future__ import annotations

from typing import Optional


def _tag(value: int) -> str:
    return f"0x{value & 0xFFFFFFFF:08X}"


class GmcError(RuntimeError):
    pass


class MalformedContainer(GmcError):
    """A record is truncated or declares more bytes than are available."""

    def __init__(self, message: str, offset: Optional[int] = None):
        if offset is not None:
            message = f"{message} (at offset 0x{offset:X})"
        super().__init__(message)
        self.offset = offset


class BadMagic(GmcError):
    def __init__(self, expected: int, found: int, offset: int = 0):
        super().__init__(
            f"Bad magic at offset 0x{offset:X}: expected {_tag(expected)}, found {_tag(found)}"
        )
        self.expected = expected
        self.found = found
        self.offset = offset


class UnsupportedPlatformVersion(GmcError):
    """The caller applied a decoder that does not match the buffer."""

    def __init__(self, platform, version: int, expected: int, found: int, message: Optional[str] = None):
        name = getattr(platform, "name", platform)
        if message is None:
            message = (
                f"Buffer does not hold a {name} v{version} model package: "
                f"expected {_tag(expected)}, found {_tag(found)}"
            )
        super().__init__(message)
        self.platform = platform
        self.version = version
        self.expected = expected
        self.found = found


class InvalidUnpackType(GmcError):
    def __init__(self, offset: int, command: int):
        super().__init__(
            f"Invalid VIF unpack type in command 0x{command:02X} at offset 0x{offset:X}"
        )
        self.offset = offset
        self.command = command


class DecoderNotImplemented(GmcError, NotImplementedError):
    pass
