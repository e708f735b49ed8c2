'''
clase Diagnostic y helpers (etapa, línea/columna, reglas esperadas)
'''

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Optional, Literal, Tuple

# Severidad de los diagnósticos (en español)
Severity = Literal["error", "advertencia", "nota"]

# Etapa del pipeline que produjo el diagnóstico
Stage = Literal["parse", "semantic", "encoding", "link"]

_SEV_TO_LABEL = {
    "error": "ERROR",
    "advertencia": "ADVERTENCIA",
    "nota": "NOTA",
}

@dataclass(frozen=True)
class Diagnostic:
    """Estructura de un diagnóstico para reportar problemas.

    Abarca errores, advertencias y notas, con ubicación opcional (archivo, línea y columna)
    y un mensaje de ayuda (pista) para orientar la corrección. Los errores de enlazado no
    tienen posición en el fuente: se identifican por símbolo o desplazamiento en el mensaje.
    """
    severity: Severity
    message: str
    line: Optional[int] = None
    col: Optional[int] = None
    hint: Optional[str] = None
    file: Optional[str] = None
    stage: Stage = "semantic"
    expected: Tuple[str, ...] = ()

    @property
    def is_error(self) -> bool:
        return self.severity == "error"

    def __str__(self) -> str:
        loc = ""
        if self.file is not None:
            loc += f"{self.file}:"
        if self.line is not None:
            loc += f"{self.line}"
            if self.col is not None:
                loc += f":{self.col}"
        if loc:
            loc += ": "
        sev = _SEV_TO_LABEL.get(self.severity, str(self.severity).upper())
        core = f"{sev}: {self.message}"
        if self.expected:
            core += f" (se esperaba: {', '.join(self.expected)})"
        if self.hint:
            core += f"  (pista: {self.hint})"
        return loc + core

def error(message: str, *, line: int | None = None, col: int | None = None,
          file: str | None = None, hint: str | None = None,
          stage: Stage = "semantic", expected: Iterable[str] = ()) -> Diagnostic:
    """Crea un diagnóstico de tipo error."""
    return Diagnostic("error", message, line, col, hint, file, stage, tuple(expected))

def warning(message: str, *, line: int | None = None, col: int | None = None,
            file: str | None = None, hint: str | None = None,
            stage: Stage = "semantic") -> Diagnostic:
    """Crea un diagnóstico de tipo advertencia."""
    return Diagnostic("advertencia", message, line, col, hint, file, stage)

def note(message: str, *, line: int | None = None, col: int | None = None,
         file: str | None = None, stage: Stage = "semantic") -> Diagnostic:
    """Información adicional que acompaña a otro diagnóstico (p.ej. dónde se declaró algo)."""
    return Diagnostic("nota", message, line, col, None, file, stage)

def has_errors(diags: Iterable[Diagnostic]) -> bool:
    return any(d.is_error for d in diags)

def count_errors(diags: Iterable[Diagnostic]) -> int:
    return sum(1 for d in diags if d.is_error)
