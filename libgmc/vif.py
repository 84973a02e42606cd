"""libgmc.vif

PS2 VIF (vector interface) stream disassembler.

PS2 sub models carry their vertex attributes as a VIFcode stream: a run of
4-byte tags, some followed by operands or by packed "unpack" data. This
module walks such a stream and returns one DecodedInstruction per tag,
including the unpacked attribute values.

VIFcode layout (little-endian u32):

  bits  0-15  immediate
  bits 16-23  num
  bits 24-30  command
  bit  31     interrupt

The decoder keeps the VIF registers that affect decoding (CL/WL, mode, ITOP
and the STMASK table) in a VifState value that is threaded through
decode_tag(); a stream always starts from a fresh VifState().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from .binreader import BinReader
from .errors import InvalidUnpackType

log = logging.getLogger(__name__)


class VifCommand(IntEnum):
    NOP = 0x00
    STCYCL = 0x01
    OFFSET = 0x02
    BASE = 0x03
    ITOP = 0x04
    STMOD = 0x05
    MSKPATH3 = 0x06
    MARK = 0x07
    FLUSHE = 0x10
    FLUSH = 0x11
    FLUSHA = 0x13
    MSCAL = 0x14
    MSCALF = 0x15
    MSCNT = 0x17
    STMASK = 0x20
    STROW = 0x30
    STCOL = 0x31
    MPG = 0x4A
    DIRECT = 0x50
    DIRECTHL = 0x51


class VifUnpackType(IntEnum):
    S_32 = 0x0
    S_16 = 0x1
    S_8 = 0x2
    V2_32 = 0x4
    V2_16 = 0x5
    V2_8 = 0x6
    V3_32 = 0x8
    V3_16 = 0x9
    V3_8 = 0xA
    V4_32 = 0xC
    V4_16 = 0xD
    V4_8 = 0xE
    V4_5551 = 0xF


class VifMode(IntEnum):
    NORMAL = 0
    OFFSET = 1
    DIFFERENCE = 2


class VifMaskType(IntEnum):
    DATA = 0
    MASK_ROW = 1
    MASK_COL = 2
    WRITE_PROTECT = 3


# unpack type -> (element size in bytes, raw values per element)
UNPACK_FORMATS: Dict[VifUnpackType, Tuple[int, int]] = {
    VifUnpackType.S_32: (4, 1),
    VifUnpackType.S_16: (2, 1),
    VifUnpackType.S_8: (1, 1),
    VifUnpackType.V2_32: (4, 2),
    VifUnpackType.V2_16: (2, 2),
    VifUnpackType.V2_8: (1, 2),
    VifUnpackType.V3_32: (4, 3),
    VifUnpackType.V3_16: (2, 3),
    VifUnpackType.V3_8: (1, 3),
    VifUnpackType.V4_32: (4, 4),
    VifUnpackType.V4_16: (2, 4),
    VifUnpackType.V4_8: (1, 4),
    VifUnpackType.V4_5551: (2, 1),
}

# fixed-point divisors for the scaled formats; everything else stays integer
UNPACK_SCALE: Dict[VifUnpackType, float] = {
    VifUnpackType.V3_8: 128.0,
    VifUnpackType.V4_8: 128.0,
    VifUnpackType.S_16: 2048.0,
    VifUnpackType.V4_16: 256.0,
}


@dataclass(frozen=True)
class VifTag:
    imm: int
    num: int
    cmd: int
    irq: bool = False

    @classmethod
    def from_u32(cls, code: int) -> "VifTag":
        return cls(
            imm=code & 0xFFFF,
            num=(code >> 16) & 0xFF,
            cmd=(code >> 24) & 0x7F,
            irq=bool(code >> 31),
        )

    @property
    def code(self) -> int:
        return self.imm | (self.num << 16) | (self.cmd << 24) | (int(self.irq) << 31)

    # command fields

    @property
    def p(self) -> int:
        return (self.cmd >> 5) & 0x3

    @property
    def is_unpack(self) -> bool:
        return self.p == 3

    @property
    def m(self) -> bool:
        return bool(self.cmd & 0x10)

    @property
    def unpack_type(self) -> Optional[VifUnpackType]:
        try:
            return VifUnpackType(self.cmd & 0xF)
        except ValueError:
            return None

    # immediate fields

    @property
    def addr(self) -> int:
        return self.imm & 0x3FF

    @property
    def usn(self) -> bool:
        return bool(self.imm & 0x4000)

    @property
    def flg(self) -> bool:
        return bool(self.imm & 0x8000)

    @property
    def cl(self) -> int:
        return self.imm & 0xFF

    @property
    def wl(self) -> int:
        return (self.imm >> 8) & 0xFF

    @property
    def offset(self) -> int:
        return self.imm & 0x3FF

    @property
    def itop(self) -> int:
        return self.imm & 0x3FF

    @property
    def mode(self) -> int:
        return self.imm & 0x3


MaskTable = Tuple[Tuple[VifMaskType, ...], ...]


@dataclass(frozen=True)
class VifState:
    cl: int = 0
    wl: int = 0
    mode: int = VifMode.NORMAL
    itop: int = 0
    masks: Optional[MaskTable] = None

    @property
    def mode_name(self) -> str:
        try:
            return VifMode(self.mode).name
        except ValueError:
            return "UNDEFINED"


class Rgba5551(NamedTuple):
    r: int
    g: int
    b: int
    a: int


@dataclass
class DecodedInstruction:
    offset: int
    tag: VifTag
    name: str
    state: VifState
    operands: Dict[str, int] = field(default_factory=dict)
    handled: bool = True
    mask: Optional[int] = None
    unpack_type: Optional[VifUnpackType] = None
    elements: List[tuple] = field(default_factory=list)
    groups: List[List[tuple]] = field(default_factory=list)

    @property
    def usn(self) -> bool:
        return self.tag.usn

    @property
    def flg(self) -> bool:
        return self.tag.flg


def decode_mask(word: int) -> MaskTable:
    """Split an STMASK word into 2-bit codes, one row per output vector."""
    return tuple(
        tuple(VifMaskType((word >> (row * 8 + col * 2)) & 0x3) for col in range(4))
        for row in range(4)
    )


def group_elements(elements: List[tuple], wl: int) -> List[List[tuple]]:
    if not elements:
        return []
    if wl <= 0:
        return [list(elements)]
    return [list(elements[i : i + wl]) for i in range(0, len(elements), wl)]


def _read_value(b: BinReader, size: int, usn: bool) -> int:
    if size == 1:
        return b.u8() if usn else b.s8()
    if size == 2:
        return b.u16() if usn else b.s16()
    return b.u32() if usn else b.s32()


def read_unpack(b: BinReader, tag: VifTag, utype: VifUnpackType) -> List[tuple]:
    size, count = UNPACK_FORMATS[utype]
    scale = UNPACK_SCALE.get(utype)
    elements: List[tuple] = []

    for _ in range(tag.num):
        values = []
        for _ in range(count):
            val = _read_value(b, size, tag.usn)
            if size < 4 and tag.flg and val > 127:
                val -= 128
            values.append(val / scale if scale else val)

        if utype == VifUnpackType.V4_5551:
            val = values[0]
            elements.append(Rgba5551(val & 0x1F, (val >> 5) & 0x1F, (val >> 10) & 0x1F, (val >> 15) & 0x1))
        else:
            elements.append(tuple(values))
    return elements


def unpack_name(cmd: int) -> str:
    try:
        return "UNPACK_" + VifUnpackType(cmd & 0xF).name
    except ValueError:
        return f"UNPACK_{cmd & 0xF:X}"


def decode_tag(b: BinReader, state: VifState) -> Tuple[DecodedInstruction, VifState]:
    """Decode the tag at the cursor; returns the instruction and the new state."""
    offset = b.tell()
    tag = VifTag.from_u32(b.u32())
    operands: Dict[str, int] = {}
    mask = None
    handled = True

    try:
        command: Optional[VifCommand] = VifCommand(tag.cmd)
    except ValueError:
        command = None

    name = command.name if command is not None else ""

    if command == VifCommand.NOP:
        b.skip(4)
    elif command == VifCommand.STCYCL:
        state = replace(state, cl=tag.cl, wl=tag.wl)
        operands = {"CL": tag.cl, "WL": tag.wl}
    elif command == VifCommand.OFFSET:
        operands = {"OFFSET": tag.offset}
        b.skip(4)
    elif command == VifCommand.ITOP:
        state = replace(state, itop=tag.itop)
        operands = {"ADDR": tag.itop}
        b.skip(4)
    elif command == VifCommand.STMOD:
        state = replace(state, mode=tag.mode)
        operands = {"MODE": tag.mode}
    elif command == VifCommand.MSCAL:
        operands = {"EXECADDR": tag.imm}
        b.skip(4)
    elif command == VifCommand.MSCNT:
        pass
    elif command == VifCommand.STMASK:
        mask = b.u32()
        state = replace(state, masks=decode_mask(mask))
        operands = {"MASK": mask}
    elif command == VifCommand.FLUSH:
        b.skip(4)
    elif command == VifCommand.DIRECT:
        operands = {"SIZE": tag.imm}
        b.skip(tag.imm * 16 + 4)
    elif command is not None:
        log.warning("Unhandled VIF command %s at offset 0x%X", name, offset)
        handled = False
        b.skip(4)
    elif tag.is_unpack:
        name = unpack_name(tag.cmd)
        operands = {"ADDR": tag.addr, "NUM": tag.num}
    else:
        name = f"$$CMD_{tag.cmd:02X}$$"
        operands = {"ADDR": tag.addr, "NUM": tag.num, "IRQ": int(tag.irq)}

    instr = DecodedInstruction(
        offset=offset,
        tag=tag,
        name=name,
        state=state,
        operands=operands,
        handled=handled,
        mask=mask,
    )

    if tag.is_unpack:
        utype = tag.unpack_type
        if utype is None:
            raise InvalidUnpackType(offset, tag.cmd)
        instr.unpack_type = utype
        instr.elements = read_unpack(b, tag, utype)
        instr.groups = group_elements(instr.elements, state.wl)

    return instr, state


def iter_instructions(data) -> Iterator[DecodedInstruction]:
    b = BinReader(data)
    state = VifState()
    while True:
        # tags are 4-byte aligned; unpack data may leave the cursor unaligned
        b.align(4)
        if b.at_end():
            return
        instr, state = decode_tag(b, state)
        yield instr


def disassemble(data) -> List[DecodedInstruction]:
    return list(iter_instructions(data))
