'''
dataclases de AST (Program, directivas, Routine, Label, Instruction, operandos)
'''

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

# ---- Operandos tal como salen del parser ----

@dataclass(frozen=True)
class Reg:
    """Registro 'a16[3]': nombre del conjunto (sin validar) e índice."""
    set_name: str
    index: int

    def __str__(self) -> str:
        return f"{self.set_name}[{self.index}]"

@dataclass(frozen=True)
class Imm:
    """Inmediato. 'width' se fija en el análisis según el hueco del ISA (0 = sin asignar)."""
    value: int
    text: str = ""
    width: int = 0

    def __str__(self) -> str:
        return self.text or str(self.value)

@dataclass(frozen=True)
class Sym:
    """Nombre sin clasificar: etiqueta, dato o constante (lo decide el análisis)."""
    name: str

    def __str__(self) -> str:
        return self.name

@dataclass(frozen=True)
class LibCall:
    """Llamada externa 'lib.routine'."""
    library: str
    routine: str

    @property
    def name(self) -> str:
        return f"{self.library}.{self.routine}"

    def __str__(self) -> str:
        return self.name

# ---- Operandos anotados (salida del análisis) ----

@dataclass(frozen=True)
class LabelRef:
    """Referencia a una etiqueta o rutina local."""
    name: str

    def __str__(self) -> str:
        return self.name

@dataclass(frozen=True)
class DataRef:
    """Referencia a un símbolo del segmento de datos."""
    name: str

    def __str__(self) -> str:
        return self.name

Operand = Union[Reg, Imm, Sym, LibCall, LabelRef, DataRef]

# ---- Nodos de código ----

@dataclass(frozen=True)
class Label:
    """Etiqueta en el código fuente (p.ej., 'loop:')."""
    name: str
    line: int
    col: int

@dataclass(frozen=True)
class Instruction:
    """Instrucción con mnemónico y operandos tipados."""
    mnemonic: str
    operands: Tuple[Operand, ...]
    line: int
    col: int

@dataclass(frozen=True)
class Routine:
    """Rutina: '.MAIN' (punto de entrada, name=None) o '.ROUTINE name' (exportada)."""
    name: Optional[str]
    body: Tuple[Union[Label, Instruction], ...]
    line: int
    col: int

    @property
    def is_main(self) -> bool:
        return self.name is None

# ---- Directivas ----

@dataclass(frozen=True)
class IsaeDecl:
    """Extensión del ISA declarada en '.ISAE'."""
    name: str
    line: int
    col: int

@dataclass(frozen=True)
class LibDecl:
    """Alias de librería en '.LIBS', opcionalmente ligado a un id de contenido."""
    alias: str
    lib_id: Optional[str]
    line: int
    col: int

@dataclass(frozen=True)
class ConstDecl:
    name: str
    value: Imm
    line: int
    col: int

@dataclass(frozen=True)
class DataDecl:
    """Declaración de datos: 'name = "texto"' o 'name = u16 1, 2, 3'."""
    name: str
    type_name: str           # 'str' para literales de cadena
    values: Tuple[Union[Imm, bytes], ...]
    line: int
    col: int

Directive = Union[IsaeDecl, LibDecl, ConstDecl, DataDecl]

@dataclass(frozen=True)
class Program:
    """Raíz del AST: secuencia ordenada de directivas y rutinas."""
    items: Tuple[Union[Directive, Routine], ...]
    filename: Optional[str] = None

    def _of(self, cls) -> List:
        return [it for it in self.items if isinstance(it, cls)]

    @property
    def isae(self) -> List[IsaeDecl]:
        return self._of(IsaeDecl)

    @property
    def libs(self) -> List[LibDecl]:
        return self._of(LibDecl)

    @property
    def consts(self) -> List[ConstDecl]:
        return self._of(ConstDecl)

    @property
    def data(self) -> List[DataDecl]:
        return self._of(DataDecl)

    @property
    def routines(self) -> List[Routine]:
        return self._of(Routine)

    def instructions(self) -> List[Instruction]:
        return [n for r in self.routines for n in r.body if isinstance(n, Instruction)]
