"""
Deterministic compact binary encoding used for snapshots, witnesses and
envelopes: little-endian fixed-width integers, u32 length/count prefixes,
one-byte option flags and one-byte variant tags.
"""

from typing import Callable, List, Optional, TypeVar

from .errors import DecodingError, InvalidArgument

T = TypeVar("T")


class Encoder:
    def __init__(self):
        self._parts: List[bytes] = []

    def u8(self, value: int) -> "Encoder":
        return self._int(value, 1)

    def u16(self, value: int) -> "Encoder":
        return self._int(value, 2)

    def u32(self, value: int) -> "Encoder":
        return self._int(value, 4)

    def u64(self, value: int) -> "Encoder":
        return self._int(value, 8)

    def _int(self, value: int, width: int) -> "Encoder":
        if not 0 <= value < (1 << (8 * width)):
            raise ValueError(f"integer {value} does not fit in {width} bytes")
        self._parts.append(value.to_bytes(width, "little"))
        return self

    def fixed(self, data: bytes, length: int) -> "Encoder":
        if len(data) != length:
            raise ValueError(f"expected {length} bytes, got {len(data)}")
        self._parts.append(bytes(data))
        return self

    def var_bytes(self, data: bytes) -> "Encoder":
        self.u32(len(data))
        self._parts.append(bytes(data))
        return self

    def text(self, value: str) -> "Encoder":
        return self.var_bytes(value.encode("utf-8"))

    def option(self, value: Optional[T], write: Callable[["Encoder", T], object]) -> "Encoder":
        if value is None:
            return self.u8(0)
        self.u8(1)
        write(self, value)
        return self

    def seq(self, items, write: Callable[["Encoder", T], object]) -> "Encoder":
        items = list(items)
        self.u32(len(items))
        for item in items:
            write(self, item)
        return self

    def to_bytes(self) -> bytes:
        return b"".join(self._parts)


class Decoder:
    def __init__(self, data: bytes):
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise DecodingError(f"expected bytes, got {type(data).__name__}")
        self._data = bytes(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def read(self, length: int) -> bytes:
        if length < 0 or self._pos + length > len(self._data):
            raise DecodingError(
                f"truncated input: need {length} bytes at offset {self._pos}, "
                f"{self.remaining} available"
            )
        chunk = self._data[self._pos:self._pos + length]
        self._pos += length
        return chunk

    def u8(self) -> int:
        return self.read(1)[0]

    def u16(self) -> int:
        return int.from_bytes(self.read(2), "little")

    def u32(self) -> int:
        return int.from_bytes(self.read(4), "little")

    def u64(self) -> int:
        return int.from_bytes(self.read(8), "little")

    def fixed(self, length: int) -> bytes:
        return self.read(length)

    def var_bytes(self) -> bytes:
        return self.read(self.u32())

    def text(self) -> str:
        try:
            return self.var_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodingError(f"invalid utf-8 text: {e}")

    def option(self, read: Callable[["Decoder"], T]) -> Optional[T]:
        flag = self.u8()
        if flag == 0:
            return None
        if flag != 1:
            raise DecodingError(f"invalid option flag {flag}")
        return read(self)

    def seq(self, read: Callable[["Decoder"], T]) -> List[T]:
        count = self.u32()
        # every element takes at least one byte
        if count > self.remaining:
            raise DecodingError(f"sequence length {count} exceeds remaining input")
        return [read(self) for _ in range(count)]

    def finish(self) -> None:
        if self.remaining:
            raise DecodingError(f"{self.remaining} trailing bytes after decoding")


def decode_all(data: bytes, read: Callable[[Decoder], T]) -> T:
    """Decode one value and require the input to be fully consumed."""
    decoder = Decoder(data)
    try:
        value = read(decoder)
    except InvalidArgument as e:
        # decoded fields that fail value checks are malformed input
        raise DecodingError(e.message, field=e.field)
    decoder.finish()
    return value


# ------------------------------
# Snapshot framing: kind byte || format byte || body
# ------------------------------
BUILDER_SNAPSHOT = 0x01
SESSION_SNAPSHOT = 0x02
SNAPSHOT_FORMAT = 0x01

_SNAPSHOT_NAMES = {BUILDER_SNAPSHOT: "transaction builder", SESSION_SNAPSHOT: "multisig session"}


def snapshot_encoder(kind: int) -> Encoder:
    return Encoder().u8(kind).u8(SNAPSHOT_FORMAT)


def read_snapshot_header(dec: Decoder, kind: int) -> None:
    found = dec.u8()
    if found != kind:
        name = _SNAPSHOT_NAMES.get(found, f"unknown kind {found:#04x}")
        raise DecodingError(f"expected {_SNAPSHOT_NAMES[kind]} snapshot, got {name}", field="snapshot")
    version = dec.u8()
    if version != SNAPSHOT_FORMAT:
        raise DecodingError(f"unsupported snapshot format {version}", field="snapshot")
