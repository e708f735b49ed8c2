import pytest
from aluasm.symbols import Symbol, SymbolKind, SymbolTable, SymbolStateError

def test_namespaces_are_separate():
    st = SymbolTable()
    assert st.declare(Symbol("x", SymbolKind.LOCAL_LABEL, 0)) is None
    assert st.declare(Symbol("x", SymbolKind.DATA_SYMBOL, 4)) is None
    prev = st.declare(Symbol("x", SymbolKind.EXPORTED_LABEL, 8))
    assert prev is not None and prev.value == 0
    assert len(st) == 2
    assert {s.kind for s in st.find("x")} == {SymbolKind.LOCAL_LABEL, SymbolKind.DATA_SYMBOL}

def test_pending_resolves_once():
    st = SymbolTable()
    sym = Symbol("lib.f", SymbolKind.IMPORTED_EXTERNAL)
    st.declare(sym)
    assert st.pending() == [sym]
    sym.resolve(16)
    assert sym.resolved and not st.pending()
    with pytest.raises(SymbolStateError):
        sym.resolve(24)
