'''
tabla de símbolos por espacio de nombres, con estado pendiente/resuelto
'''

from __future__ import annotations
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterator, List, Optional, Tuple

class SymbolKind(IntEnum):
    """Tipo de símbolo; el valor entero es el que se escribe en el fichero objeto."""
    LOCAL_LABEL = 1
    EXPORTED_LABEL = 2
    IMPORTED_EXTERNAL = 3
    DATA_SYMBOL = 4
    CONSTANT = 5

# Espacio de nombres de cada tipo: los nombres son únicos dentro de cada uno
NAMESPACE = {
    SymbolKind.LOCAL_LABEL: "code",
    SymbolKind.EXPORTED_LABEL: "code",
    SymbolKind.IMPORTED_EXTERNAL: "extern",
    SymbolKind.DATA_SYMBOL: "data",
    SymbolKind.CONSTANT: "const",
}

_KIND_LABEL = {
    SymbolKind.LOCAL_LABEL: "etiqueta",
    SymbolKind.EXPORTED_LABEL: "rutina",
    SymbolKind.IMPORTED_EXTERNAL: "rutina externa",
    SymbolKind.DATA_SYMBOL: "dato",
    SymbolKind.CONSTANT: "constante",
}

def kind_label(kind: SymbolKind) -> str:
    return _KIND_LABEL[kind]

class SymbolStateError(RuntimeError):
    """Se intentó resolver dos veces un símbolo (o volver a pendiente)."""

@dataclass
class Symbol:
    name: str
    kind: SymbolKind
    value: Optional[int] = None     # None = pendiente
    line: Optional[int] = None
    col: Optional[int] = None

    @property
    def resolved(self) -> bool:
        return self.value is not None

    def resolve(self, value: int) -> None:
        """pendiente → resuelto, una sola vez."""
        if self.value is not None:
            raise SymbolStateError(f"Símbolo ya resuelto: {self.name} = {self.value}")
        self.value = value

@dataclass
class SymbolTable:
    """Símbolos indexados por (espacio de nombres, nombre), en orden de declaración."""
    _entries: Dict[Tuple[str, str], Symbol] = field(default_factory=dict)

    def declare(self, sym: Symbol) -> Optional[Symbol]:
        """Añade sym; si ya existe en su espacio devuelve el previo y no lo reemplaza."""
        key = (NAMESPACE[sym.kind], sym.name)
        prev = self._entries.get(key)
        if prev is not None:
            return prev
        self._entries[key] = sym
        return None

    def get(self, namespace: str, name: str) -> Optional[Symbol]:
        return self._entries.get((namespace, name))

    def find(self, name: str) -> List[Symbol]:
        """Todas las entradas con ese nombre, en cualquier espacio."""
        return [s for (_, n), s in self._entries.items() if n == name]

    def of_kind(self, *kinds: SymbolKind) -> List[Symbol]:
        return [s for s in self._entries.values() if s.kind in kinds]

    def pending(self) -> List[Symbol]:
        return [s for s in self._entries.values() if not s.resolved]

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
