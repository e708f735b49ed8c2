'''
módulo objeto (.ao): contenedor inmutable de código, datos, símbolos y reubicaciones
'''

from __future__ import annotations
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from .binio import HEADER, NO_ENTRY, Reader, Writer
from .errors import ObjectFormatError
from .isa import isae_manifest
from .symbols import SymbolKind

OBJ_MAGIC = b"ALUO"
OBJ_VERSION = 1

class RelocKind(IntEnum):
    LOCAL_OFFSET = 1
    EXTERNAL_CALL = 2
    DATA_ADDRESS = 3

@dataclass(frozen=True)
class Relocation:
    """Parche diferido: 'offset' apunta al campo del operando dentro del código."""
    offset: int
    kind: RelocKind
    target: str

@dataclass(frozen=True)
class ModuleSymbol:
    name: str
    kind: SymbolKind
    value: int

@dataclass(frozen=True)
class Import:
    """Referencia externa 'lib.routine' y el tipo de símbolo que debe encontrar."""
    name: str
    kind: SymbolKind = SymbolKind.EXPORTED_LABEL

@dataclass(frozen=True)
class LibRef:
    """Alias de librería y, si el fuente lo fijó, su id de contenido."""
    alias: str
    lib_id: Optional[str] = None

@dataclass(frozen=True)
class ObjectModule:
    name: str
    isae: int
    code: bytes
    data: bytes
    exports: Tuple[ModuleSymbol, ...] = ()
    symbols: Tuple[ModuleSymbol, ...] = ()
    imports: Tuple[Import, ...] = ()
    libs: Tuple[LibRef, ...] = ()
    relocations: Tuple[Relocation, ...] = ()
    entry: Optional[int] = None

    @property
    def isae_manifest(self) -> str:
        return isae_manifest(self.isae)

    def export_offset(self, name: str) -> Optional[int]:
        for s in self.exports:
            if s.name == name:
                return s.value
        return None

    def lookup(self, name: str, *kinds: SymbolKind) -> Optional[ModuleSymbol]:
        """Busca en exports y symbols; si se dan kinds, filtra por ellos."""
        for s in self.exports + self.symbols:
            if s.name == name and (not kinds or s.kind in kinds):
                return s
        return None

    def lib_id(self, alias: str) -> Optional[str]:
        for ref in self.libs:
            if ref.alias == alias:
                return ref.lib_id
        return None

    # ---------- Serialización ----------

    def to_bytes(self) -> bytes:
        w = Writer()
        w.buf += HEADER.pack(OBJ_MAGIC, OBJ_VERSION, self.isae,
                             NO_ENTRY if self.entry is None else self.entry)
        w.section(Writer().text(self.name))
        w.blob(self.code)
        w.blob(self.data)
        w.section(_symbols(self.exports))
        w.section(_symbols(self.symbols))
        imp = Writer().u16(len(self.imports))
        for i in self.imports:
            imp.text(i.name).u8(i.kind)
        w.section(imp)
        libs = Writer().u16(len(self.libs))
        for ref in self.libs:
            libs.text(ref.alias).text(ref.lib_id or "")
        w.section(libs)
        rel = Writer().u32(len(self.relocations))
        for r in self.relocations:
            rel.u32(r.offset).u8(r.kind).text(r.target)
        w.section(rel)
        return w.getvalue()

    @classmethod
    def from_bytes(cls, raw: bytes) -> "ObjectModule":
        r = Reader(raw, what="módulo objeto")
        magic, version, isae, entry = r.unpack(HEADER)
        if magic != OBJ_MAGIC:
            raise ObjectFormatError(f"Magia inválida en módulo objeto: {magic!r}")
        if version != OBJ_VERSION:
            raise ObjectFormatError(f"Versión de módulo objeto no soportada: {version}")
        name = r.section().text()
        code = r.blob()
        data = r.blob()
        exports = _read_symbols(r.section())
        symbols = _read_symbols(r.section())
        s = r.section()
        imports = tuple(Import(s.text(), _kind(s.u8())) for _ in range(s.u16()))
        s.expect_end()
        s = r.section()
        libs = []
        for _ in range(s.u16()):
            alias, lib_id = s.text(), s.text()
            libs.append(LibRef(alias, lib_id or None))
        s.expect_end()
        s = r.section()
        relocs = []
        for _ in range(s.u32()):
            offset, kind, target = s.u32(), s.u8(), s.text()
            try:
                relocs.append(Relocation(offset, RelocKind(kind), target))
            except ValueError as ex:
                raise ObjectFormatError(f"Tipo de reubicación desconocido: {kind}") from ex
        s.expect_end()
        r.expect_end()
        return cls(name=name, isae=isae, code=code, data=data, exports=exports, symbols=symbols,
                   imports=imports, libs=tuple(libs), relocations=tuple(relocs),
                   entry=None if entry == NO_ENTRY else entry)

    def write(self, path: Union[str, Path]) -> None:
        Path(path).write_bytes(self.to_bytes())

    @classmethod
    def read(cls, path: Union[str, Path]) -> "ObjectModule":
        return cls.from_bytes(Path(path).read_bytes())

def _kind(v: int) -> SymbolKind:
    try:
        return SymbolKind(v)
    except ValueError as ex:
        raise ObjectFormatError(f"Tipo de símbolo desconocido: {v}") from ex

def _symbols(items: Iterable[ModuleSymbol]) -> Writer:
    items = list(items)
    w = Writer().u16(len(items))
    for s in items:
        w.text(s.name).u8(s.kind).u32(s.value)
    return w

def _read_symbols(r: Reader) -> Tuple[ModuleSymbol, ...]:
    out = tuple(ModuleSymbol(r.text(), _kind(r.u8()), r.u32()) for _ in range(r.u16()))
    r.expect_end()
    return out
