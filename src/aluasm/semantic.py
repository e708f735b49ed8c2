# src/aluasm/semantic.py
from __future__ import annotations
import difflib
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .ast import (
    DataDecl, DataRef, Imm, Instruction, Label, LabelRef, LibCall, Operand,
    Program, Reg, Sym,
)
from .content_id import is_content_id
from .diagnostics import Diagnostic, error, has_errors, note, warning
from .isa import (
    INSTR_SIZE, ISAE_BITS, MAX_OFFSET, MAX_SEGMENT, SPEC, ISpec, Slot, SlotKind,
    isae_mask, spec as isa_spec,
)
from .regs import banks_label, check_index, reg_set
from .symbols import Symbol, SymbolKind, SymbolTable, kind_label
from .utils import fits, nbit_range

LOGGER = logging.getLogger("aluasm.semantic")

# Tipos de inicializador del segmento de datos: nombre -> (bytes, con signo)
DATA_TYPES: Dict[str, Tuple[int, bool]] = {
    "u8": (1, False), "u16": (2, False), "u32": (4, False), "u64": (8, False),
    "u128": (16, False), "u256": (32, False),
    "i8": (1, True), "i16": (2, True), "i32": (4, True), "i64": (8, True),
}

# ---------- Resultado del análisis (AST anotado + tabla de símbolos) ----------

@dataclass(frozen=True)
class PlacedInstruction:
    """Instrucción validada con su desplazamiento y operandos anotados."""
    offset: int
    spec: ISpec
    operands: Tuple[Operand, ...]
    line: int
    col: int

@dataclass(frozen=True)
class DataItem:
    decl: DataDecl
    offset: int
    size: int

@dataclass
class AnalysisResult:
    program: Program
    symtab: SymbolTable
    isae: int
    code: List[PlacedInstruction]
    data: List[DataItem]
    libs: Dict[str, Optional[str]]
    entry: Optional[int]
    code_size: int
    data_size: int
    diagnostics: List[Diagnostic] = field(default_factory=list)
    filename: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not has_errors(self.diagnostics)

# ---------- Helpers ----------

def hex_blob(imm: Imm) -> Optional[bytes]:
    """Bytes de un literal hexadecimal para el tipo 'bytes' (conserva ceros a la izquierda)."""
    t = (imm.text or "").replace("_", "").lower()
    if not t.startswith("0x"):
        return None
    digits = t[2:]
    if not digits or len(digits) % 2:
        return None
    return bytes.fromhex(digits)

class _Analyzer:
    """Dos pasadas sobre el AST: declaraciones (offsets) y referencias (validación)."""

    def __init__(self, program: Program, isae: Iterable[str], filename: Optional[str]):
        self.program = program
        self.extra_isae = list(isae)
        self.filename = filename if filename is not None else program.filename
        self.diags: List[Diagnostic] = []
        self.symtab = SymbolTable()
        self.mask = ISAE_BITS["ALU"]
        self.libs: Dict[str, Optional[str]] = {}
        self.used_libs: set[str] = set()
        self.data: List[DataItem] = []
        self.code: List[PlacedInstruction] = []
        self.entry: Optional[int] = None
        self.code_size = 0
        self.data_size = 0

    def err(self, message: str, *, line: int | None = None, col: int | None = None,
            hint: str | None = None) -> None:
        self.diags.append(error(message, line=line, col=col, file=self.filename, hint=hint))

    def _declare(self, name: str, kind: SymbolKind, value: Optional[int], line: int, col: int) -> None:
        sym = Symbol(name, kind, line=line, col=col)
        prev = self.symtab.declare(sym)
        if prev is not None:
            self.err(f"Redefinición de {kind_label(kind)}: {name}", line=line, col=col,
                     hint=f"ya declarada en la línea {prev.line}" if prev.line else None)
            if prev.line:
                self.diags.append(note(f"primera declaración de {name}", line=prev.line, col=prev.col,
                                       file=self.filename))
            return
        if kind is not SymbolKind.CONSTANT and value is not None and value > MAX_OFFSET:
            self.err(f"{kind_label(kind).capitalize()} '{name}' fuera del rango direccionable: "
                     f"desplazamiento {value} (máximo {MAX_OFFSET})", line=line, col=col)
            return
        if value is not None:
            sym.resolve(value)

    # ---------- Pasada 1: declaraciones y layout ----------

    def collect(self) -> None:
        for name in self.extra_isae:
            try:
                self.mask |= isae_mask([name])
            except KeyError:
                self.err(f"Extensión ISA desconocida: {name}", hint=self._suggest(name, ISAE_BITS))
        for d in self.program.isae:
            try:
                self.mask |= isae_mask([d.name])
            except KeyError:
                self.err(f"Extensión ISA desconocida: {d.name}", line=d.line, col=d.col,
                         hint=self._suggest(d.name, ISAE_BITS))

        for lib in self.program.libs:
            if lib.alias in self.libs:
                self.err(f"Librería redefinida: {lib.alias}", line=lib.line, col=lib.col)
                continue
            if lib.lib_id is not None and not is_content_id(lib.lib_id):
                self.err(f"Id de librería mal formado: {lib.lib_id}", line=lib.line, col=lib.col,
                         hint="formato <algoritmo>:<digest hex>, p.ej. sha256:…")
            self.libs[lib.alias] = lib.lib_id

        for c in self.program.consts:
            self._declare(c.name, SymbolKind.CONSTANT, c.value.value, c.line, c.col)

        offset = 0
        for d in self.program.data:
            size = self._data_size(d)
            self._declare(d.name, SymbolKind.DATA_SYMBOL, offset, d.line, d.col)
            self.data.append(DataItem(d, offset, size))
            offset += size
        self.data_size = offset
        if offset > MAX_SEGMENT:
            self.err(f"Segmento de datos demasiado grande: {offset} bytes (máximo {MAX_SEGMENT})")

        pc = 0
        for r in self.program.routines:
            if r.is_main:
                if self.entry is not None:
                    self.err("Sección .MAIN duplicada", line=r.line, col=r.col)
                else:
                    self.entry = pc
            else:
                self._declare(r.name, SymbolKind.EXPORTED_LABEL, pc, r.line, r.col)
            for n in r.body:
                if isinstance(n, Label):
                    self._declare(n.name, SymbolKind.LOCAL_LABEL, pc, n.line, n.col)
                else:
                    # El tamaño no depende de los valores: toda instrucción ocupa una palabra
                    pc += INSTR_SIZE
        self.code_size = pc
        if pc > MAX_SEGMENT:
            self.err(f"Segmento de código demasiado grande: {pc} bytes (máximo {MAX_SEGMENT})")

    def _data_size(self, d: DataDecl) -> int:
        if d.type_name == "str":
            if not all(isinstance(v, bytes) for v in d.values):
                self.err(f"'str' no es un tipo numérico en {d.name}", line=d.line, col=d.col,
                         hint=f'las cadenas se declaran como {d.name} = "texto"')
                return 0
            return sum(len(v) for v in d.values)
        if d.type_name == "bytes":
            size = 0
            for v in d.values:
                blob = hex_blob(v) if isinstance(v, Imm) else None
                if blob is None:
                    self.err(f"Valor de 'bytes' inválido en {d.name}: {v}", line=d.line, col=d.col,
                             hint="usa hexadecimal 0x… con un número par de dígitos")
                    continue
                size += len(blob)
            return size
        if d.type_name not in DATA_TYPES:
            self.err(f"Tipo de dato desconocido: {d.type_name}", line=d.line, col=d.col,
                     hint=self._suggest(d.type_name, list(DATA_TYPES) + ["bytes"]))
            return 0
        width, signed = DATA_TYPES[d.type_name]
        for v in d.values:
            if isinstance(v, Imm) and not fits(v.value, width * 8, signed=signed):
                lo, hi = nbit_range(width * 8, signed=signed)
                self.err(f"Valor fuera de rango para {d.type_name} en {d.name}: {v.value} ({lo}..{hi})",
                         line=d.line, col=d.col)
        return width * len(d.values)

    # ---------- Pasada 2: referencias y restricciones del ISA ----------

    def check(self) -> None:
        pc = 0
        for r in self.program.routines:
            for n in r.body:
                if isinstance(n, Instruction):
                    placed = self._check_instruction(n, pc)
                    if placed is not None:
                        self.code.append(placed)
                    pc += INSTR_SIZE
        for alias in self.libs:
            if alias not in self.used_libs:
                decl = next(l for l in self.program.libs if l.alias == alias)
                self.diags.append(warning(f"Librería declarada y no usada: {alias}", line=decl.line,
                                          col=decl.col, file=self.filename))

    def _check_instruction(self, ins: Instruction, pc: int) -> Optional[PlacedInstruction]:
        try:
            sp = isa_spec(ins.mnemonic)
        except KeyError:
            self.err(f"Instrucción desconocida: {ins.mnemonic}", line=ins.line, col=ins.col,
                     hint=self._suggest(ins.mnemonic, SPEC))
            return None
        ok = True
        if not self.mask & ISAE_BITS[sp.isae]:
            self.err(f"{ins.mnemonic} requiere la extensión {sp.isae}, no declarada en .ISAE",
                     line=ins.line, col=ins.col, hint=f"añade '{sp.isae}' a la sección .ISAE")
            ok = False
        if len(ins.operands) != len(sp.slots):
            self.err(f"{ins.mnemonic} espera {len(sp.slots)} operando(s), recibió {len(ins.operands)}",
                     line=ins.line, col=ins.col)
            return None
        annotated: List[Operand] = []
        for op, slot in zip(ins.operands, sp.slots):
            a = self._check_operand(ins, op, slot)
            if a is None:
                ok = False
            else:
                annotated.append(a)
        if ok and sp.same_set:
            sets = {a.set_name for a in annotated if isinstance(a, Reg)}
            if len(sets) > 1:
                self.err(f"{ins.mnemonic} requiere registros del mismo conjunto: {', '.join(sorted(sets))}",
                         line=ins.line, col=ins.col)
                ok = False
        if not ok:
            return None
        return PlacedInstruction(pc, sp, tuple(annotated), ins.line, ins.col)

    def _check_operand(self, ins: Instruction, op: Operand, slot: Slot) -> Optional[Operand]:
        line, col = ins.line, ins.col
        if slot.kind is SlotKind.REG:
            if not isinstance(op, Reg):
                self.err(f"{ins.mnemonic}: se esperaba registro {banks_label(slot.banks)}, no '{op}'",
                         line=line, col=col)
                return None
            try:
                rs = reg_set(op.set_name)
            except ValueError as ex:
                self.err(str(ex), line=line, col=col)
                return None
            if rs.bank not in slot.banks:
                self.err(f"{ins.mnemonic}: banco de {rs.name} no admitido (admite {banks_label(slot.banks)})",
                         line=line, col=col)
                return None
            if slot.sets and rs.name not in slot.sets:
                self.err(f"{ins.mnemonic}: requiere {'/'.join(slot.sets)}, no {rs.name}", line=line, col=col)
                return None
            try:
                check_index(rs, op.index)
            except ValueError as ex:
                self.err(str(ex), line=line, col=col)
                return None
            return Reg(rs.name, op.index)

        if slot.kind is SlotKind.IMM:
            if isinstance(op, Imm):
                value, text = op.value, op.text
            elif isinstance(op, Sym):
                sym = self._lookup(op.name, "const", SymbolKind.CONSTANT, line, col)
                if sym is None:
                    return None
                value, text = sym.value, op.name
            else:
                self.err(f"{ins.mnemonic}: se esperaba inmediato, no '{op}'", line=line, col=col)
                return None
            if not fits(value, slot.bits, signed=slot.signed):
                lo, hi = nbit_range(slot.bits, signed=slot.signed)
                sign = "con signo" if slot.signed else "sin signo"
                self.err(f"Operando fuera de rango: {value} no cabe en {slot.bits} bits {sign} ({lo}..{hi})",
                         line=line, col=col)
                return None
            return Imm(value, text=text, width=slot.bits)

        if slot.kind is SlotKind.LABEL:
            if isinstance(op, LibCall):
                self.err(f"{ins.mnemonic}: '{op}' es externa; usa 'call' o 'exec'", line=line, col=col)
                return None
            if not isinstance(op, Sym):
                self.err(f"{ins.mnemonic}: se esperaba etiqueta, no '{op}'", line=line, col=col)
                return None
            sym = self._lookup(op.name, "code", SymbolKind.LOCAL_LABEL, line, col)
            return LabelRef(op.name) if sym is not None else None

        if slot.kind is SlotKind.DATA:
            if not isinstance(op, Sym):
                self.err(f"{ins.mnemonic}: se esperaba símbolo de datos, no '{op}'", line=line, col=col)
                return None
            sym = self._lookup(op.name, "data", SymbolKind.DATA_SYMBOL, line, col)
            return DataRef(op.name) if sym is not None else None

        # EXTERN
        if not isinstance(op, LibCall):
            hint = None
            if isinstance(op, Sym) and self.symtab.get("code", op.name) is not None:
                hint = f"'{op.name}' es local; usa 'routine {op.name}'"
            self.err(f"{ins.mnemonic}: se esperaba llamada externa 'lib.rutina', no '{op}'",
                     line=line, col=col, hint=hint)
            return None
        if op.library not in self.libs:
            self.libs[op.library] = None
        self.used_libs.add(op.library)
        if self.symtab.get("extern", op.name) is None:
            # Queda pendiente: la resuelve el enlazador
            self.symtab.declare(Symbol(op.name, SymbolKind.IMPORTED_EXTERNAL, line=line, col=col))
        return op

    def _lookup(self, name: str, namespace: str, want: SymbolKind, line: int, col: int) -> Optional[Symbol]:
        sym = self.symtab.get(namespace, name)
        if sym is not None:
            return sym
        others = self.symtab.find(name)
        if others:
            self.err(f"'{name}' es {kind_label(others[0].kind)}, no {kind_label(want)}", line=line, col=col)
        else:
            pool = [s.name for s in self.symtab if s.kind is not SymbolKind.IMPORTED_EXTERNAL]
            self.err(f"Símbolo no definido: {name}", line=line, col=col, hint=self._suggest(name, pool))
        return None

    @staticmethod
    def _suggest(name: str, pool: Iterable[str]) -> Optional[str]:
        close = difflib.get_close_matches(name, sorted(pool), n=1)
        return f"¿quisiste decir '{close[0]}'?" if close else None

def analyze(program: Program, *, isae: Iterable[str] = (), filename: Optional[str] = None) -> AnalysisResult:
    """Valida el programa y construye la tabla de símbolos.

    isae: extensiones seleccionadas fuera del fuente (p.ej. '--isae' en la CLI), que se suman
    a las de la sección .ISAE. Todos los errores se acumulan en diagnostics.
    """
    a = _Analyzer(program, isae, filename)
    a.collect()
    a.check()
    LOGGER.debug("%s: %d símbolos, %d bytes de código, %d de datos, %d diagnóstico(s)",
                 a.filename or "<mem>", len(a.symtab), a.code_size, a.data_size, len(a.diags))
    return AnalysisResult(
        program=program, symtab=a.symtab, isae=a.mask, code=a.code, data=a.data,
        libs=a.libs, entry=a.entry, code_size=a.code_size, data_size=a.data_size,
        diagnostics=a.diags, filename=a.filename,
    )
