import pytest
from aluasm.assembler import assemble_text
from aluasm.errors import ObjectFormatError
from aluasm.module import ObjectModule, Relocation, RelocKind, ModuleSymbol, Import, LibRef
from aluasm.symbols import SymbolKind

ID = "sha256:" + "ab" * 32

SRC = f""".LIBS
    std = {ID}
.DATA
    greeting = "hola"
.MAIN
start:
    putd s16[0], greeting
    call std.print
    jmp start
.ROUTINE helper
    ret
"""

def _module() -> ObjectModule:
    _, diags, _, module = assemble_text(SRC, filename="demo.aluasm")
    assert not diags
    return module

def test_roundtrip_is_byte_exact(tmp_path):
    m = _module()
    path = tmp_path / "demo.ao"
    m.write(path)
    back = ObjectModule.read(path)
    assert back == m
    assert back.to_bytes() == path.read_bytes()
    assert back.name == "demo" and back.entry == 0
    assert back.lib_id("std") == ID

def test_lookup_filters_by_kind():
    m = _module()
    assert m.lookup("start").kind is SymbolKind.LOCAL_LABEL
    assert m.lookup("greeting", SymbolKind.DATA_SYMBOL).value == 0
    assert m.lookup("greeting", SymbolKind.LOCAL_LABEL) is None
    assert m.export_offset("helper") == 24
    assert m.export_offset("start") is None

def test_module_without_entry():
    m = ObjectModule(name="lib", isae=1, code=b"\x07" + bytes(7), data=b"",
                     exports=(ModuleSymbol("f", SymbolKind.EXPORTED_LABEL, 0),))
    back = ObjectModule.from_bytes(m.to_bytes())
    assert back.entry is None and back == m

@pytest.mark.parametrize("mutate", [
    lambda raw: b"XXXX" + raw[4:],          # magia
    lambda raw: raw[:4] + b"\x09\x00" + raw[6:],  # versión
    lambda raw: raw[:-3],                   # truncado
    lambda raw: raw + b"\x00",              # bytes sobrantes
])
def test_malformed_files_are_rejected(mutate):
    raw = _module().to_bytes()
    with pytest.raises(ObjectFormatError):
        ObjectModule.from_bytes(mutate(raw))

def test_unknown_relocation_kind():
    m = ObjectModule(name="x", isae=1, code=bytes(8), data=b"",
                     relocations=(Relocation(1, RelocKind.LOCAL_OFFSET, "a"),),
                     symbols=(ModuleSymbol("a", SymbolKind.LOCAL_LABEL, 0),))
    raw = bytearray(m.to_bytes())
    # la reubicación es lo último: offset u32, kind u8, nombre (u16 + 1 byte)
    raw[-4] = 9
    with pytest.raises(ObjectFormatError):
        ObjectModule.from_bytes(bytes(raw))
