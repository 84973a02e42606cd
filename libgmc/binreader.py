"""Little-endian cursor over an in-memory buffer."""

from __future__ import annotations

import struct
from typing import Tuple

from .errors import MalformedContainer


class BinReader:
    __slots__ = ("data", "ofs", "base")

    def __init__(self, data, ofs: int = 0, base: int = 0):
        # base is only used to report absolute file offsets in errors
        self.data = memoryview(data)
        self.ofs = ofs
        self.base = base

    def __len__(self) -> int:
        return len(self.data)

    def tell(self) -> int:
        return self.ofs

    def seek(self, ofs: int) -> None:
        self.ofs = ofs

    def skip(self, n: int) -> None:
        if n < 0 or self.ofs + n > len(self.data):
            raise MalformedContainer(
                f"Cannot skip {n} bytes, have {self.remaining()}",
                self.base + self.ofs,
            )
        self.ofs += n

    def align(self, n: int) -> None:
        self.ofs = (self.ofs + n - 1) & ~(n - 1)

    def remaining(self) -> int:
        return max(0, len(self.data) - self.ofs)

    def at_end(self) -> bool:
        return self.ofs >= len(self.data)

    def read(self, n: int) -> memoryview:
        if n < 0 or self.ofs + n > len(self.data):
            raise MalformedContainer(
                f"Unexpected end of data, need {n} bytes, have {self.remaining()}",
                self.base + self.ofs,
            )
        b = self.data[self.ofs : self.ofs + n]
        self.ofs += n
        return b

    def _unpack(self, fmt: str, size: int):
        return struct.unpack_from(fmt, self.read(size))

    def u8(self) -> int:
        return self.read(1)[0]

    def s8(self) -> int:
        return self._unpack("<b", 1)[0]

    def u16(self) -> int:
        return self._unpack("<H", 2)[0]

    def s16(self) -> int:
        return self._unpack("<h", 2)[0]

    def u32(self) -> int:
        return self._unpack("<I", 4)[0]

    def s32(self) -> int:
        return self._unpack("<i", 4)[0]

    def u64(self) -> int:
        return self._unpack("<Q", 8)[0]

    def f32(self) -> float:
        return self._unpack("<f", 4)[0]

    def vec3(self) -> Tuple[float, float, float]:
        return self._unpack("<3f", 12)

    def floats(self, n: int) -> Tuple[float, ...]:
        return self._unpack(f"<{n}f", 4 * n)

    def peek_u32(self) -> int:
        pos = self.ofs
        try:
            return self.u32()
        finally:
            self.ofs = pos

    def u16s(self, n: int) -> list:
        return list(self._unpack(f"<{n}H", 2 * n))

    def u32s(self, n: int) -> list:
        return list(self._unpack(f"<{n}I", 4 * n))

    def slice(self, ofs: int, n: int) -> memoryview:
        """Bounds-checked view at an absolute offset; the cursor does not move."""
        if ofs < 0 or n < 0 or ofs + n > len(self.data):
            raise MalformedContainer(
                f"Range of {n} bytes at +0x{ofs:X} overruns buffer of {len(self.data)} bytes",
                self.base + ofs,
            )
        return self.data[ofs : ofs + n]
