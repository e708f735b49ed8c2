'''
librería enlazada (.alu): binario final, inmutable y direccionado por contenido
'''

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from .binio import HEADER, NO_ENTRY, Reader, Writer
from .content_id import DEFAULT_STRATEGY, DigestStrategy, normalize_id, strategy_for_id
from .errors import ObjectFormatError
from .isa import isae_manifest
from .module import ModuleSymbol, _read_symbols, _symbols

LIB_MAGIC = b"ALUL"
LIB_VERSION = 1

# Prefijo de dominio del contenido que se resume en el id
_CANONICAL_TAG = b"ALULIB\x00"

@dataclass(frozen=True)
class CallSite:
    """Llamada externa resuelta: posición del campo, librería destino y rutina dentro de ella."""
    offset: int
    lib_id: str
    routine_offset: int

@dataclass(frozen=True)
class Library:
    id: str
    isae: int
    code: bytes
    data: bytes
    libs: Tuple[str, ...] = ()
    exports: Tuple[ModuleSymbol, ...] = ()
    call_table: Tuple[CallSite, ...] = ()
    entry: Optional[int] = None
    name: str = ""

    @staticmethod
    def canonical_bytes(isae: int, code: bytes, data: bytes, libs: Iterable[str]) -> bytes:
        """Serialización canónica de {manifiesto ISAE, código, datos, tabla de librerías}.

        Los nombres de exportación y la entrada no forman parte del id: dos librerías con los
        mismos bytes resueltos comparten id aunque se hayan ensamblado desde fuentes distintas.
        """
        libs = list(libs)
        w = Writer()
        w.buf += _CANONICAL_TAG
        w.text(isae_manifest(isae))
        w.blob(code)
        w.blob(data)
        w.u16(len(libs))
        for lib_id in libs:
            w.text(normalize_id(lib_id))
        return w.getvalue()

    @classmethod
    def build(cls, *, isae: int, code: bytes, data: bytes, libs: Iterable[str] = (),
              exports: Iterable[ModuleSymbol] = (), call_table: Iterable[CallSite] = (),
              entry: Optional[int] = None, name: str = "",
              strategy: DigestStrategy = DEFAULT_STRATEGY) -> "Library":
        """Calcula el id sobre los bytes ya resueltos y congela la librería."""
        libs = tuple(normalize_id(x) for x in libs)
        lib_id = strategy.content_id(cls.canonical_bytes(isae, code, data, libs))
        return cls(id=lib_id, isae=isae, code=bytes(code), data=bytes(data), libs=libs,
                   exports=tuple(exports), call_table=tuple(call_table), entry=entry, name=name)

    @property
    def isae_manifest(self) -> str:
        return isae_manifest(self.isae)

    def verify(self) -> bool:
        """True si el id corresponde al contenido."""
        strategy = strategy_for_id(self.id)
        return strategy.content_id(self.canonical_bytes(self.isae, self.code, self.data, self.libs)) == self.id

    def export_offset(self, name: str) -> Optional[int]:
        for s in self.exports:
            if s.name == name:
                return s.value
        return None

    # ---------- Serialización ----------

    def to_bytes(self) -> bytes:
        w = Writer()
        w.buf += HEADER.pack(LIB_MAGIC, LIB_VERSION, self.isae,
                             NO_ENTRY if self.entry is None else self.entry)
        w.section(Writer().text(self.name).text(self.id))
        w.blob(self.code)
        w.blob(self.data)
        libs = Writer().u16(len(self.libs))
        for lib_id in self.libs:
            libs.text(lib_id)
        w.section(libs)
        w.section(_symbols(self.exports))
        calls = Writer().u32(len(self.call_table))
        for c in self.call_table:
            calls.u32(c.offset).u16(self.libs.index(c.lib_id)).u32(c.routine_offset)
        w.section(calls)
        return w.getvalue()

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Library":
        r = Reader(raw, what="librería")
        magic, version, isae, entry = r.unpack(HEADER)
        if magic != LIB_MAGIC:
            raise ObjectFormatError(f"Magia inválida en librería: {magic!r}")
        if version != LIB_VERSION:
            raise ObjectFormatError(f"Versión de librería no soportada: {version}")
        s = r.section()
        name, lib_id = s.text(), s.text()
        code = r.blob()
        data = r.blob()
        s = r.section()
        libs = tuple(s.text() for _ in range(s.u16()))
        s.expect_end()
        exports = _read_symbols(r.section())
        s = r.section()
        calls = []
        for _ in range(s.u32()):
            offset, index, routine = s.u32(), s.u16(), s.u32()
            if index >= len(libs):
                raise ObjectFormatError(f"Tabla de llamadas: índice de librería {index} fuera de rango")
            calls.append(CallSite(offset, libs[index], routine))
        s.expect_end()
        r.expect_end()
        lib = cls(id=lib_id, isae=isae, code=code, data=data, libs=libs, exports=exports,
                  call_table=tuple(calls), entry=None if entry == NO_ENTRY else entry, name=name)
        try:
            valid = lib.verify()
        except (KeyError, ValueError) as ex:
            raise ObjectFormatError(f"Id de librería ilegible: {lib_id} ({ex})") from ex
        if not valid:
            raise ObjectFormatError(f"El id {lib_id} no corresponde al contenido de la librería")
        return lib

    def write(self, path: Union[str, Path]) -> None:
        Path(path).write_bytes(self.to_bytes())

    @classmethod
    def read(cls, path: Union[str, Path]) -> "Library":
        return cls.from_bytes(Path(path).read_bytes())
