import pytest
from aluasm.content_id import (SHA256, BLAKE2B, DEFAULT_STRATEGY, get_strategy, split_content_id,
                               is_content_id, strategy_for_id, normalize_id)

def test_format_and_strategies():
    cid = SHA256.content_id(b"abc")
    assert cid == "sha256:ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    other = BLAKE2B.content_id(b"abc")
    assert other.startswith("blake2b256:") and len(other.split(":")[1]) == 64
    assert DEFAULT_STRATEGY is SHA256
    assert get_strategy("blake2b256") is BLAKE2B
    with pytest.raises(KeyError):
        get_strategy("md5")

def test_parse_ids():
    cid = SHA256.content_id(b"")
    algo, digest = split_content_id(cid)
    assert algo == "sha256" and len(digest) == 32
    assert is_content_id(cid)
    assert strategy_for_id(cid) is SHA256
    assert normalize_id(cid.upper().replace("SHA256", "sha256")) == cid
    assert split_content_id("sha256:abcd") is None
    assert not is_content_id("md5:" + "00" * 32)
    with pytest.raises(ValueError):
        strategy_for_id("nope")
