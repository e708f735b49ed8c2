import pytest
from aluasm.isa import (SPEC, BY_OPCODE, INSTR_SIZE, OPCODE_SIZE, SlotKind, spec, spec_by_opcode,
                        isae_mask, isae_names, isae_manifest)

def test_core_instructions_present():
    assert spec("fail").opcode == 0x00
    assert spec("jmp").opcode == 0x02
    assert spec("call").opcode == 0x05
    assert spec("put").opcode == 0x08
    assert spec("ADD").opcode == 0x18
    assert spec("sha256").isae == "BPDIGEST"
    assert spec("nop").opcode == 0xFF
    with pytest.raises(KeyError):
        spec("addi")

def test_every_template_fits_one_word():
    for sp in SPEC.values():
        assert OPCODE_SIZE + sp.operand_bytes <= INSTR_SIZE, sp.mnemonic
        assert spec_by_opcode(sp.opcode) is sp
    assert len(BY_OPCODE) == len(SPEC)

def test_slot_sizes():
    put = spec("put")
    assert [s.kind for s in put.slots] == [SlotKind.REG, SlotKind.IMM]
    assert put.slots[1].size == 4 and put.slots[1].signed
    assert spec("call").slots[0].size == 3
    assert spec("jmp").slots[0].size == 2

def test_isae_mask_and_manifest():
    assert isae_mask([]) == 0x01
    m = isae_mask(["ed25519", "BPDIGEST"])
    assert isae_names(m) == ["ALU", "BPDIGEST", "ED25519"]
    assert isae_manifest(m) == "ALU BPDIGEST ED25519"
    with pytest.raises(KeyError):
        isae_mask(["SIMD"])
