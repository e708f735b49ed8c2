# src/aluasm/linker.py
from __future__ import annotations
import logging
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .content_id import DEFAULT_STRATEGY, DigestStrategy, is_content_id, normalize_id
from .errors import (CyclicDependency, DuplicateExport, InternalConsistencyError, IsaExtensionMismatch,
                     LinkError, ToolchainError, UndefinedExternal)
from .isa import ALL_ISAE_MASK, MAX_OFFSET, MAX_SEGMENT, isae_names
from .library import CallSite, Library
from .module import Import, LibRef, ModuleSymbol, ObjectModule, RelocKind, Relocation
from .symbols import SymbolKind
from .utils import pack_le

LOGGER = logging.getLogger("aluasm.linker")

# La tabla de librerías se indexa con un u8 en cada llamada externa
MAX_LIBS = 256

# ---------- Entorno de resolución ----------

class ResolutionEnvironment:
    """Lo que el enlazador puede ver: librerías por id, alias -> id y módulos en línea.

    Se pasa explícitamente a link(); el enlazador nunca consulta estado global.
    """

    def __init__(self, *, libraries: Iterable[Library] = (), aliases: Optional[Mapping[str, str]] = None,
                 modules: Optional[Mapping[str, ObjectModule]] = None, isae: int = ALL_ISAE_MASK):
        self.libraries: Dict[str, Library] = {}
        self.aliases: Dict[str, str] = {k: normalize_id(v) for k, v in (aliases or {}).items()}
        self.modules: Dict[str, ObjectModule] = dict(modules or {})
        self.isae = isae
        for lib in libraries:
            self.add_library(lib)

    def add_library(self, lib: Library, *, alias: Optional[str] = None) -> str:
        self.libraries[lib.id] = lib
        if alias is not None:
            self.aliases[alias] = lib.id
        return lib.id

    def add_module(self, alias: str, module: ObjectModule) -> None:
        self.modules[alias] = module

    def library(self, lib_id: Optional[str]) -> Optional[Library]:
        if lib_id is None or not is_content_id(lib_id):
            return None
        return self.libraries.get(normalize_id(lib_id))

# ---------- Máquina de estados del trabajo de enlazado ----------

class LinkState(Enum):
    UNLINKED = "unlinked"
    PARTIALLY_RESOLVED = "partially-resolved"
    RESOLVED = "resolved"
    ADDRESSED = "addressed"
    FAILED = "failed"

_ORDER = [LinkState.UNLINKED, LinkState.PARTIALLY_RESOLVED, LinkState.RESOLVED, LinkState.ADDRESSED]

class LinkStateError(RuntimeError):
    """Transición hacia atrás (o desde un estado final) en un trabajo de enlazado."""

class LinkJob:
    """Enlazado de un módulo: código mutable, tabla de librerías y tabla de llamadas en curso."""

    def __init__(self, module: ObjectModule):
        self.module = module
        self.state = LinkState.UNLINKED
        self.code = bytearray(module.code)
        self.libs: List[str] = []
        self.calls: List[CallSite] = []

    def advance(self, new: LinkState) -> None:
        if self.state in (LinkState.ADDRESSED, LinkState.FAILED):
            raise LinkStateError(f"{self.module.name}: el trabajo ya terminó ({self.state.value})")
        if new is not LinkState.FAILED and _ORDER.index(new) <= _ORDER.index(self.state):
            raise LinkStateError(f"{self.module.name}: transición inválida {self.state.value} -> {new.value}")
        LOGGER.debug("%s: %s -> %s", self.module.name, self.state.value, new.value)
        self.state = new

    def lib_index(self, lib_id: str) -> int:
        """Índice en la tabla de librerías, asignado por orden de primer uso."""
        if lib_id not in self.libs:
            if len(self.libs) >= MAX_LIBS:
                raise LinkError(f"{self.module.name}: más de {MAX_LIBS} librerías referenciadas")
            self.libs.append(lib_id)
        return self.libs.index(lib_id)

    def patch(self, r: Relocation, raw: bytes) -> None:
        end = r.offset + len(raw)
        if r.offset < 1 or end > len(self.code):
            raise InternalConsistencyError(f"{self.module.name}: reubicación de '{r.target}' fuera del código "
                                           f"(offset {r.offset})")
        self.code[r.offset:end] = raw

# ---------- Enlazador ----------

class Linker:
    """Enlaza módulos contra un entorno; los módulos en línea se enlazan una sola vez.

    linked: alias -> Library de cada módulo en línea que hizo falta enlazar.
    """

    def __init__(self, env: ResolutionEnvironment, *, digest: DigestStrategy = DEFAULT_STRATEGY):
        self.env = env
        self.digest = digest
        self.linked: Dict[str, Library] = {}
        self._stack: List[str] = []

    def link(self, module: ObjectModule) -> Library:
        job = LinkJob(module)
        try:
            self._check_isae(module.isae, module.name)
            self._local(job)
            job.advance(LinkState.PARTIALLY_RESOLVED)
            self._external(job)
            self._data(job)
            job.advance(LinkState.RESOLVED)
            lib = Library.build(isae=module.isae, code=bytes(job.code), data=module.data, libs=job.libs,
                                exports=module.exports, call_table=job.calls, entry=module.entry,
                                name=module.name, strategy=self.digest)
            job.advance(LinkState.ADDRESSED)
        except ToolchainError:
            job.advance(LinkState.FAILED)
            raise
        LOGGER.info("%s enlazado: %s (%d bytes de código, %d librería(s))",
                    module.name, lib.id, len(lib.code), len(lib.libs))
        return lib

    # ----- pasos -----

    def _check_isae(self, mask: int, who: str) -> None:
        missing = isae_names(mask & ~self.env.isae)
        if missing:
            raise IsaExtensionMismatch(missing, module=who)

    def _local(self, job: LinkJob) -> None:
        m = job.module
        for r in _of_kind(m.relocations, RelocKind.LOCAL_OFFSET):
            sym = m.lookup(r.target, SymbolKind.LOCAL_LABEL, SymbolKind.EXPORTED_LABEL)
            if sym is None:
                raise InternalConsistencyError(f"{m.name}: etiqueta local sin resolver: {r.target}")
            job.patch(r, _u16(sym.value, m.name, r.target))

    def _external(self, job: LinkJob) -> None:
        m = job.module
        for r in _of_kind(m.relocations, RelocKind.EXTERNAL_CALL):
            alias, sep, routine = r.target.partition(".")
            if not sep:
                raise InternalConsistencyError(f"{m.name}: referencia externa sin librería: {r.target}")
            lib = self._resolve_library(m, alias, r.target)
            offset = lib.export_offset(routine)
            if offset is None:
                raise UndefinedExternal(r.target, reason=f"la librería {lib.id} no exporta '{routine}'")
            index = job.lib_index(lib.id)
            job.patch(r, bytes([index]) + _u16(offset, m.name, r.target))
            job.calls.append(CallSite(r.offset, lib.id, offset))
            LOGGER.debug("%s: %s -> [%d] %s+%d", m.name, r.target, index, lib.id, offset)

    def _data(self, job: LinkJob) -> None:
        m = job.module
        for r in _of_kind(m.relocations, RelocKind.DATA_ADDRESS):
            sym = m.lookup(r.target, SymbolKind.DATA_SYMBOL)
            if sym is None:
                raise InternalConsistencyError(f"{m.name}: dato sin resolver: {r.target}")
            if sym.value > len(m.data):
                raise InternalConsistencyError(f"{m.name}: dato '{r.target}' fuera del segmento de datos")
            job.patch(r, _u16(sym.value, m.name, r.target))

    def _resolve_library(self, module: ObjectModule, alias: str, name: str) -> Library:
        """Id fijado en el fuente, luego alias del entorno, luego módulo en línea, luego id directo."""
        pinned = module.lib_id(alias)
        lib = self.env.library(pinned)
        if lib is None:
            lib = self.env.library(self.env.aliases.get(alias))
        if lib is None and alias in self.env.modules:
            lib = self._link_inline(alias)
        if lib is None:
            lib = self.env.library(alias)
        if lib is None:
            where = f"{alias} ({pinned})" if pinned else alias
            raise UndefinedExternal(name, reason=f"librería '{where}' no está en el entorno de resolución")
        if pinned is not None and normalize_id(pinned) != lib.id:
            raise UndefinedExternal(name, reason=f"'{alias}' fijada a {pinned}, pero el entorno da {lib.id}")
        self._check_isae(lib.isae, lib.name or lib.id)
        return lib

    def _link_inline(self, alias: str) -> Library:
        if alias in self.linked:
            return self.linked[alias]
        if alias in self._stack:
            raise CyclicDependency(self._stack[self._stack.index(alias):] + [alias])
        self._stack.append(alias)
        try:
            lib = self.link(self.env.modules[alias])
        finally:
            self._stack.pop()
        self.linked[alias] = lib
        return lib

def _u16(value: int, who: str, target: str) -> bytes:
    if not 0 <= value <= MAX_OFFSET:
        raise InternalConsistencyError(f"{who}: desplazamiento de '{target}' fuera de rango: {value}")
    return pack_le(value, 2)

def _of_kind(relocs: Iterable[Relocation], kind: RelocKind) -> List[Relocation]:
    return sorted((r for r in relocs if r.kind is kind), key=lambda r: r.offset)

def link(module: ObjectModule, env: ResolutionEnvironment, *,
         digest: DigestStrategy = DEFAULT_STRATEGY) -> Library:
    """Módulo objeto + entorno -> Library direccionada por contenido (o LinkError)."""
    return Linker(env, digest=digest).link(module)

# ---------- Fusión de módulos ----------

def merge_modules(modules: Sequence[ObjectModule], *, name: Optional[str] = None) -> ObjectModule:
    """Une varios módulos en uno: código y datos concatenados y rebasados.

    Los símbolos locales se cualifican como 'nombre@i' para que no choquen entre módulos;
    las exportaciones y la entrada deben ser únicas (DuplicateExport).
    """
    if not modules:
        raise LinkError("No hay módulos que enlazar")
    if len(modules) == 1 and name is None:
        return modules[0]

    code = bytearray()
    data = bytearray()
    isae = 0
    entry: Optional[int] = None
    entry_owner = ""
    exports: List[ModuleSymbol] = []
    owners: Dict[str, str] = {}
    symbols: List[ModuleSymbol] = []
    imports: Dict[str, Import] = {}
    libs: Dict[str, Optional[str]] = {}
    relocs: List[Relocation] = []

    for i, m in enumerate(modules):
        code_base, data_base = len(code), len(data)

        def rebase(s: ModuleSymbol) -> int:
            return s.value + (data_base if s.kind is SymbolKind.DATA_SYMBOL else code_base)

        for s in m.exports:
            if s.name in owners:
                raise DuplicateExport(s.name, modules=(owners[s.name], m.name))
            owners[s.name] = m.name
            exports.append(ModuleSymbol(s.name, s.kind, rebase(s)))
        if m.entry is not None:
            if entry is not None:
                raise DuplicateExport(".MAIN", modules=(entry_owner, m.name))
            entry, entry_owner = m.entry + code_base, m.name

        local = {s.name: f"{s.name}@{i}" for s in m.symbols}
        symbols.extend(ModuleSymbol(local[s.name], s.kind, rebase(s)) for s in m.symbols)
        for r in m.relocations:
            target = r.target if r.kind is RelocKind.EXTERNAL_CALL else local.get(r.target, r.target)
            relocs.append(Relocation(r.offset + code_base, r.kind, target))
        for imp in m.imports:
            imports.setdefault(imp.name, imp)
        for ref in m.libs:
            known = libs.get(ref.alias)
            if known is not None and ref.lib_id is not None and normalize_id(known) != normalize_id(ref.lib_id):
                raise LinkError(f"Alias '{ref.alias}' fijado a ids distintos: {known} y {ref.lib_id}")
            libs[ref.alias] = known if known is not None else ref.lib_id

        code += m.code
        data += m.data
        isae |= m.isae

    if len(code) > MAX_SEGMENT or len(data) > MAX_SEGMENT:
        raise LinkError(f"La fusión excede el tamaño de segmento ({len(code)} bytes de código, "
                        f"{len(data)} de datos; máximo {MAX_SEGMENT})")
    for s in exports + symbols:
        if s.value > MAX_OFFSET:
            raise LinkError(f"Símbolo '{s.name}' fuera del rango direccionable tras la fusión "
                            f"(desplazamiento {s.value}, máximo {MAX_OFFSET})")
    merged = ObjectModule(
        name=name or modules[0].name,
        isae=isae,
        code=bytes(code),
        data=bytes(data),
        exports=tuple(exports),
        symbols=tuple(symbols),
        imports=tuple(imports.values()),
        libs=tuple(LibRef(alias, lib_id) for alias, lib_id in libs.items()),
        relocations=tuple(sorted(relocs, key=lambda r: r.offset)),
        entry=entry,
    )
    LOGGER.info("fusionados %d módulos en %s", len(modules), merged.name)
    return merged

def link_modules(modules: Sequence[ObjectModule], env: ResolutionEnvironment, *,
                 digest: DigestStrategy = DEFAULT_STRATEGY, name: Optional[str] = None) -> Tuple[Library, Dict[str, Library]]:
    """Fusiona y enlaza; devuelve la librería y las de los módulos en línea que se enlazaron."""
    linker = Linker(env, digest=digest)
    lib = linker.link(merge_modules(modules, name=name))
    return lib, dict(linker.linked)
