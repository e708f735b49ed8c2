'''
excepciones de las etapas que fallan al primer defecto (codificación, enlazado, formatos)
'''

from __future__ import annotations
from typing import Iterable, List, Optional

from .diagnostics import Diagnostic, Stage, count_errors, error

class ToolchainError(Exception):
    """Base de todos los errores de aluasm; lleva un Diagnostic."""
    stage: Stage = "semantic"

    def __init__(self, message: str, *, diagnostic: Optional[Diagnostic] = None):
        super().__init__(message)
        self.diagnostic = diagnostic or error(message, stage=self.stage)

class AssemblyError(ToolchainError):
    """El fuente tiene errores de parseo o semánticos (lista completa en .diagnostics)."""

    def __init__(self, diagnostics: Iterable[Diagnostic]):
        self.diagnostics: List[Diagnostic] = list(diagnostics)
        first = next((d for d in self.diagnostics if d.is_error), None)
        n = count_errors(self.diagnostics)
        super().__init__(f"{n} error(es) de ensamblado", diagnostic=first)

class EncodingError(ToolchainError):
    stage: Stage = "encoding"

    def __init__(self, message: str, *, line: int | None = None, col: int | None = None,
                 file: str | None = None):
        super().__init__(message, diagnostic=error(message, line=line, col=col, file=file,
                                                   stage="encoding"))

class InternalConsistencyError(EncodingError):
    """Un invariante que el analizador debía garantizar no se cumple (no es error del usuario)."""

class LinkError(ToolchainError):
    stage: Stage = "link"

class UndefinedExternal(LinkError):
    def __init__(self, name: str, *, reason: str = "no está en el entorno de resolución"):
        self.name = name
        super().__init__(f"Referencia externa no definida: {name} ({reason})")

class DuplicateExport(LinkError):
    def __init__(self, name: str, *, modules: Iterable[str] = ()):
        self.name = name
        self.modules = tuple(modules)
        where = f" en {', '.join(self.modules)}" if self.modules else ""
        super().__init__(f"Símbolo exportado duplicado: {name}{where}")

class IsaExtensionMismatch(LinkError):
    def __init__(self, missing: Iterable[str], *, module: str | None = None):
        self.missing = tuple(missing)
        who = f"{module} requiere" if module else "se requiere"
        super().__init__(f"{who} extensiones ISA no soportadas: {' '.join(self.missing)}")

class CyclicDependency(LinkError):
    def __init__(self, chain: Iterable[str]):
        self.chain = tuple(chain)
        super().__init__(f"Dependencia cíclica entre librerías: {' -> '.join(self.chain)}")

class ObjectFormatError(ToolchainError):
    """Fichero .ao/.alu truncado, con magia o versión desconocidas, o id alterado."""
    stage: Stage = "link"

class ConfigError(ToolchainError):
    """Manifiesto de resolución inválido."""
    stage: Stage = "link"
