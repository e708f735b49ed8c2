# src/aluasm/parser.py
from __future__ import annotations
import logging
import threading
from ast import literal_eval
from typing import List, Optional, Tuple

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from .ast import (
    ConstDecl, DataDecl, Imm, Instruction, IsaeDecl, Label, LibCall, LibDecl,
    Program, Reg, Routine, Sym,
)
from .diagnostics import Diagnostic, error
from .grammar import build_parser, describe_terminal

LOGGER = logging.getLogger("aluasm.parser")

# Un parser por hilo: los módulos independientes pueden ensamblarse en paralelo
_local = threading.local()

def _lark() -> Lark:
    p = getattr(_local, "parser", None)
    if p is None:
        LOGGER.debug("construyendo parser LALR para el hilo %s", threading.current_thread().name)
        p = _local.parser = build_parser()
    return p

_BASES = {"0x": 16, "0b": 2, "0o": 8}

def parse_int(text: str) -> int:
    """Entero en decimal, 0x, 0b u 0o, con signo opcional y separadores '_'."""
    t = text.strip().lower()
    sign = -1 if t.startswith("-") else 1
    t = t.lstrip("+-")
    base = _BASES.get(t[:2], 10)
    if base != 10:
        t = t[2:]
    return sign * int(t, base)

@v_args(inline=True)
class _AstBuilder(Transformer):
    """Árbol de lark → nodos de ast.py. No valida semántica, solo forma."""

    def __init__(self, filename: Optional[str]):
        super().__init__()
        self.filename = filename
        self.diags: List[Diagnostic] = []

    # ---- operandos ----
    def number(self, tok: Token) -> Imm:
        return Imm(parse_int(str(tok)), text=str(tok))

    def register(self, name: Token, index: Imm) -> Reg:
        return Reg(set_name=str(name).lower(), index=index.value)

    def lib_call(self, lib: Token, routine: Token) -> LibCall:
        return LibCall(str(lib), str(routine))

    def symbol(self, name: Token) -> Sym:
        return Sym(str(name))

    def operands(self, *ops):
        return tuple(ops)

    # ---- código ----
    def label(self, name: Token) -> Label:
        return Label(str(name), name.line, name.column)

    def instruction(self, name: Token, operands=()) -> Instruction:
        return Instruction(str(name).lower(), operands, name.line, name.column)

    def main_section(self, kw: Token, *body) -> Routine:
        return Routine(None, tuple(body), kw.line, kw.column)

    def routine_section(self, kw: Token, name: Token, *body) -> Routine:
        return Routine(str(name), tuple(body), name.line, name.column)

    # ---- directivas ----
    def isae_decl(self, name: Token) -> IsaeDecl:
        return IsaeDecl(str(name), name.line, name.column)

    def lib_decl(self, name: Token, lib_id: Optional[Token] = None) -> LibDecl:
        return LibDecl(str(name), str(lib_id) if lib_id is not None else None, name.line, name.column)

    def const_decl(self, name: Token, value: Imm) -> ConstDecl:
        return ConstDecl(str(name), value, name.line, name.column)

    def string_data(self, name: Token, literal: Token) -> DataDecl:
        try:
            raw = literal_eval(str(literal)).encode("utf-8")
        except (ValueError, SyntaxError) as ex:
            self.diags.append(error(f"Literal de cadena inválido: {ex}", line=literal.line,
                                    col=literal.column, file=self.filename, stage="parse"))
            raw = b""
        return DataDecl(str(name), "str", (raw,), name.line, name.column)

    def typed_data(self, name: Token, type_name: Token, *values: Imm) -> DataDecl:
        return DataDecl(str(name), str(type_name).lower(), tuple(values), name.line, name.column)

    def isae_section(self, *decls):
        return list(decls)

    libs_section = isae_section
    const_section = isae_section
    data_section = isae_section

    def start(self, *sections) -> Program:
        items = []
        for s in sections:
            if isinstance(s, list):
                items.extend(s)
            else:
                items.append(s)
        return Program(tuple(items), filename=self.filename)

def _parse_error(ex: UnexpectedInput, text: str, filename: Optional[str]) -> Diagnostic:
    parser = _lark()
    if isinstance(ex, UnexpectedToken):
        what = "fin de línea" if ex.token.type == "_NL" else repr(str(ex.token))
        msg = f"Token inesperado {what}"
        names = ex.expected
    elif isinstance(ex, UnexpectedCharacters):
        msg = f"Carácter inesperado {ex.char!r}"
        names = ex.allowed or ()
    elif isinstance(ex, UnexpectedEOF):
        msg = "Fin de fichero inesperado"
        names = ex.expected
    else:  # pragma: no cover - lark no define más subclases
        msg = str(ex)
        names = ()
    line, col = ex.line, ex.column
    if line is None or line < 1:
        lines = text.splitlines() or [""]
        line, col = len(lines), len(lines[-1]) + 1
    expected = sorted({describe_terminal(parser, n) for n in names})
    return error(msg, line=line, col=col, file=filename, stage="parse", expected=expected)

def parse(text: str, *, filename: Optional[str] = None) -> Tuple[Optional[Program], List[Diagnostic]]:
    """
    Devuelve (program, diagnostics).

    Un error de sintaxis aborta el fichero: program es None y diagnostics contiene un único
    error de etapa 'parse' con línea, columna y las reglas terminales esperadas.

    Reglas:
      - Comentarios: ';', '//' o '#' hasta fin de línea.
      - Secciones: .ISAE, .LIBS, .CONST, .DATA, .MAIN y .ROUTINE name.
      - Etiquetas: 'name:' (permite 'name: instr ...').
      - Operandos: registro 'a16[3]', número, símbolo o llamada externa 'lib.routine'.
    """
    src = text if text.endswith("\n") else text + "\n"
    try:
        tree = _lark().parse(src)
    except UnexpectedInput as ex:
        diag = _parse_error(ex, text, filename)
        LOGGER.debug("error de sintaxis: %s", diag)
        return None, [diag]
    builder = _AstBuilder(filename)
    program = builder.transform(tree)
    LOGGER.debug("%s: %d elementos de nivel superior", filename or "<mem>", len(program.items))
    if builder.diags:
        return None, builder.diags
    return program, []
