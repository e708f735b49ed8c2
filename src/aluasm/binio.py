'''
lectura/escritura de secciones binarias little-endian con prefijo de longitud
'''

from __future__ import annotations
import struct

from .errors import ObjectFormatError

U8 = struct.Struct("<B")
U16 = struct.Struct("<H")
U32 = struct.Struct("<I")

# magia, versión, máscara ISAE, entrada (0xFFFFFFFF = sin entrada)
HEADER = struct.Struct("<4sHII")
NO_ENTRY = 0xFFFFFFFF

class Writer:
    def __init__(self):
        self.buf = bytearray()

    def u8(self, v: int) -> "Writer":
        self.buf += U8.pack(v)
        return self

    def u16(self, v: int) -> "Writer":
        self.buf += U16.pack(v)
        return self

    def u32(self, v: int) -> "Writer":
        self.buf += U32.pack(v)
        return self

    def text(self, s: str) -> "Writer":
        raw = s.encode("utf-8")
        self.u16(len(raw))
        self.buf += raw
        return self

    def blob(self, raw: bytes) -> "Writer":
        self.u32(len(raw))
        self.buf += raw
        return self

    def section(self, inner: "Writer") -> "Writer":
        return self.blob(bytes(inner.buf))

    def getvalue(self) -> bytes:
        return bytes(self.buf)

class Reader:
    def __init__(self, raw: bytes, *, what: str = "fichero"):
        self.raw = raw
        self.pos = 0
        self.what = what

    def _take(self, n: int) -> bytes:
        if self.pos + n > len(self.raw):
            raise ObjectFormatError(f"{self.what} truncado en el byte {self.pos} (faltan {self.pos + n - len(self.raw)})")
        out = self.raw[self.pos:self.pos + n]
        self.pos += n
        return out

    def unpack(self, st: struct.Struct) -> tuple:
        return st.unpack(self._take(st.size))

    def u8(self) -> int:
        return self.unpack(U8)[0]

    def u16(self) -> int:
        return self.unpack(U16)[0]

    def u32(self) -> int:
        return self.unpack(U32)[0]

    def text(self) -> str:
        raw = self._take(self.u16())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as ex:
            raise ObjectFormatError(f"{self.what}: cadena no UTF-8 en el byte {self.pos}") from ex

    def blob(self) -> bytes:
        return self._take(self.u32())

    def section(self) -> "Reader":
        return Reader(self.blob(), what=self.what)

    def expect_end(self) -> None:
        if self.pos != len(self.raw):
            raise ObjectFormatError(f"{self.what}: {len(self.raw) - self.pos} bytes sobrantes")
