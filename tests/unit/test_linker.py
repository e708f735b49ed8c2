import logging
import pytest
from aluasm.assembler import assemble_text
from aluasm.errors import (CyclicDependency, DuplicateExport, InternalConsistencyError, IsaExtensionMismatch,
                           LinkError, UndefinedExternal)
from aluasm.isa import isae_mask
from aluasm.library import CallSite
from aluasm.linker import (LinkJob, LinkState, LinkStateError, ResolutionEnvironment, link, link_modules,
                           merge_modules)
from aluasm.module import ModuleSymbol, ObjectModule, RelocKind, Relocation
from aluasm.symbols import SymbolKind
from aluasm.writers import to_hex_lines

LIB_SRC = """
.ROUTINE routine
    ret
.ROUTINE other
    nop
    ret
"""

MAIN_SRC = """
.LIBS
    lib
.MAIN
    jmp start
start:
    call lib.other
    jmp start
"""

def _asm(src: str, name: str = "t") -> ObjectModule:
    _, diags, _, module = assemble_text(src, filename=f"{name}.aluasm")
    assert module is not None, diags
    return module

@pytest.fixture
def lib():
    return link(_asm(LIB_SRC, "lib"), ResolutionEnvironment())

def test_scenario_local_and_external(lib):
    m = _asm(MAIN_SRC)
    kinds = [r.kind for r in m.relocations]
    assert kinds == [RelocKind.LOCAL_OFFSET, RelocKind.EXTERNAL_CALL, RelocKind.LOCAL_OFFSET]

    env = ResolutionEnvironment(libraries=[lib], aliases={"lib": lib.id})
    out = link(m, env)
    assert to_hex_lines(out.code) == [
        "0208000000000000",   # jmp start (hacia delante)
        "0500080000000000",   # call [0] + 8
        "0208000000000000",   # jmp start (hacia atrás)
    ]
    assert out.libs == (lib.id,)
    assert out.call_table == (CallSite(9, lib.id, 8),)
    assert out.entry == 0 and out.verify()
    assert link(m, env).id == out.id

def test_library_exports(lib):
    assert lib.export_offset("routine") == 0
    assert lib.export_offset("other") == 8
    assert lib.libs == () and lib.entry is None

def test_undefined_external_produces_no_library():
    with pytest.raises(UndefinedExternal) as ei:
        link(_asm(MAIN_SRC), ResolutionEnvironment())
    assert ei.value.name == "lib.other"
    assert ei.value.diagnostic.stage == "link"

def test_missing_routine(lib):
    m = _asm(".MAIN\n  call lib.nope\n")
    with pytest.raises(UndefinedExternal, match="nope"):
        link(m, ResolutionEnvironment(libraries=[lib], aliases={"lib": lib.id}))

def test_pinned_id_resolves_without_alias(lib):
    m = _asm(f".LIBS\n  lib = {lib.id}\n.MAIN\n  call lib.routine\n")
    out = link(m, ResolutionEnvironment(libraries=[lib]))
    assert out.libs == (lib.id,)

def test_pinned_id_must_match_environment(lib):
    pinned = "sha256:" + "00" * 32
    m = _asm(f".LIBS\n  lib = {pinned}\n.MAIN\n  call lib.routine\n")
    with pytest.raises(UndefinedExternal):
        link(m, ResolutionEnvironment(libraries=[lib], aliases={"lib": lib.id}))

def test_isae_mismatch():
    m = _asm(".ISAE\n  BPDIGEST\n.MAIN\n  sha256 s16[0], r256[0]\n")
    with pytest.raises(IsaExtensionMismatch) as ei:
        link(m, ResolutionEnvironment(isae=isae_mask([])))
    assert ei.value.missing == ("BPDIGEST",)
    assert link(m, ResolutionEnvironment(isae=isae_mask(["BPDIGEST"]))).isae == 0x03

def test_data_addresses_are_patched():
    m = _asm('.DATA\n  a = u32 7\n  b = "xyz"\n.MAIN\n  putd s16[1], b\n')
    out = link(m, ResolutionEnvironment())
    assert to_hex_lines(out.code) == ["0940010400000000"]
    assert out.data == b"\x07\x00\x00\x00xyz"

def test_content_id_depends_on_bytes_not_source():
    a = link(_asm(".MAIN\nloop:\n  jmp loop\n"), ResolutionEnvironment())
    b = link(_asm("; otro nombre\n.MAIN\nagain: jmp again\n"), ResolutionEnvironment())
    c = link(_asm(".MAIN\n  nop\nloop:\n  jmp loop\n"), ResolutionEnvironment())
    assert a.id == b.id
    assert a.id != c.id

def test_content_id_changes_with_resolution(lib):
    other = link(_asm(LIB_SRC + "    nop\n", "lib2"), ResolutionEnvironment())
    m = _asm(MAIN_SRC)
    one = link(m, ResolutionEnvironment(libraries=[lib], aliases={"lib": lib.id}))
    two = link(m, ResolutionEnvironment(libraries=[other], aliases={"lib": other.id}))
    assert one.code == two.code
    assert one.id != two.id

def test_inline_modules_are_linked_once():
    env = ResolutionEnvironment(modules={"lib": _asm(LIB_SRC, "lib")})
    m = _asm(".MAIN\n  call lib.routine\n  call lib.other\n")
    out, inline = link_modules([m], env)
    assert list(inline) == ["lib"]
    assert out.libs == (inline["lib"].id,)
    assert inline["lib"].id == link(_asm(LIB_SRC, "lib"), ResolutionEnvironment()).id

def test_cyclic_inline_modules():
    a = _asm(".ROUTINE f\n  call b.g\n  ret\n", "a")
    b = _asm(".ROUTINE g\n  call a.f\n  ret\n", "b")
    env = ResolutionEnvironment(modules={"a": a, "b": b})
    with pytest.raises(CyclicDependency) as ei:
        link(a, env)
    assert ei.value.chain[0] == ei.value.chain[-1]

def test_unresolved_local_relocation_is_internal():
    m = ObjectModule(name="broken", isae=1, code=bytes.fromhex("0200000000000000"), data=b"",
                     relocations=(Relocation(1, RelocKind.LOCAL_OFFSET, "ghost"),))
    with pytest.raises(InternalConsistencyError):
        link(m, ResolutionEnvironment())

def test_label_offset_past_u16_fails_cleanly():
    m = ObjectModule(name="big", isae=1, code=bytes.fromhex("0200000000000000"), data=b"",
                     symbols=(ModuleSymbol("end", SymbolKind.LOCAL_LABEL, 1 << 16),),
                     relocations=(Relocation(1, RelocKind.LOCAL_OFFSET, "end"),))
    with pytest.raises(InternalConsistencyError) as ei:
        link(m, ResolutionEnvironment())
    assert "end" in str(ei.value)

def test_last_addressable_label_links():
    m = _asm(".MAIN\n" + "  nop\n" * 8190 + "  jmp end\nend:\n")
    lib = link(m, ResolutionEnvironment())
    assert to_hex_lines(lib.code)[-1] == "02f8ff0000000000"

def test_merge_rejects_symbol_past_u16():
    a = ObjectModule(name="a", isae=1, code=bytes(65528), data=b"")
    b = ObjectModule(name="b", isae=1, code=bytes(8), data=b"",
                     exports=(ModuleSymbol("g", SymbolKind.EXPORTED_LABEL, 8),))
    with pytest.raises(LinkError, match="fuera del rango"):
        merge_modules([a, b])

def test_link_logs(caplog, lib):
    caplog.set_level(logging.INFO, logger="aluasm.linker")
    link(_asm(MAIN_SRC), ResolutionEnvironment(libraries=[lib], aliases={"lib": lib.id}))
    assert "enlazado" in caplog.text

# ---------- máquina de estados ----------

def test_state_machine_never_regresses():
    job = LinkJob(_asm(".MAIN\n  ret\n"))
    assert job.state is LinkState.UNLINKED
    job.advance(LinkState.PARTIALLY_RESOLVED)
    job.advance(LinkState.RESOLVED)
    with pytest.raises(LinkStateError):
        job.advance(LinkState.PARTIALLY_RESOLVED)
    job.advance(LinkState.ADDRESSED)
    with pytest.raises(LinkStateError):
        job.advance(LinkState.FAILED)

def test_failed_is_terminal():
    job = LinkJob(_asm(".MAIN\n  ret\n"))
    job.advance(LinkState.FAILED)
    with pytest.raises(LinkStateError):
        job.advance(LinkState.RESOLVED)

# ---------- fusión de módulos ----------

def test_merge_rebases_code_data_and_qualifies_locals():
    a = _asm('.DATA\n  x = u8 1\n.MAIN\nstart:\n  putd s16[0], x\n  jmp start\n', "a")
    b = _asm('.DATA\n  x = u16 2\n.ROUTINE g\nstart:\n  putd s16[0], x\n  jmp start\n', "b")
    m = merge_modules([a, b])
    assert m.name == "a" and m.entry == 0
    assert m.export_offset("g") == 16
    assert {s.name: s.value for s in m.symbols} == {"x@0": 0, "start@0": 0, "x@1": 1, "start@1": 16}
    out = link(m, ResolutionEnvironment())
    assert to_hex_lines(out.code) == [
        "0940000000000000",
        "0200000000000000",
        "0940000100000000",
        "0210000000000000",
    ]

def test_merge_duplicate_export():
    a = _asm(".ROUTINE f\n  ret\n", "a")
    b = _asm(".ROUTINE f\n  nop\n", "b")
    with pytest.raises(DuplicateExport) as ei:
        merge_modules([a, b])
    assert ei.value.name == "f" and ei.value.modules == ("a", "b")

def test_merge_duplicate_entry():
    with pytest.raises(DuplicateExport):
        merge_modules([_asm(".MAIN\n  ret\n", "a"), _asm(".MAIN\n  ret\n", "b")])

def test_merge_conflicting_alias_ids():
    a = _asm(f".LIBS\n  lib = sha256:{'11' * 32}\n.MAIN\n  call lib.f\n", "a")
    b = _asm(f".LIBS\n  lib = sha256:{'22' * 32}\n.ROUTINE g\n  call lib.f\n", "b")
    with pytest.raises(LinkError):
        merge_modules([a, b])

def test_merge_requires_modules():
    with pytest.raises(LinkError):
        merge_modules([])
