import pytest

from conduitnode.chunks import (
    META_FIELDS,
    WRAPPED_CHUNK_MISSING,
    chunk_bitfield,
    chunk_meta,
    read_single_chunk,
    read_wrapped_chunk,
)

DATA = bytes(range(10))


@pytest.fixture
def enc_file(tmp_path):
    path = tmp_path / "content.enc"
    path.write_bytes(DATA)
    return path


def test_chunks_concatenate_to_file(enc_file):
    first, total = read_single_chunk(enc_file, 4, 0)
    parts = [first] + [read_single_chunk(enc_file, 4, i)[0] for i in range(1, total)]
    assert b"".join(parts) == DATA
    assert all(len(p) <= 4 for p in parts)


def test_chunk_contents(enc_file):
    assert read_single_chunk(enc_file, 4, 1)[0] == DATA[4:8]
    assert read_single_chunk(enc_file, 4, 2)[0] == DATA[8:]


def test_single_chunk_when_size_exceeds_file(enc_file):
    data, total = read_single_chunk(enc_file, 1024, 0)
    assert data == DATA
    assert total == 1


def test_index_out_of_range(enc_file):
    _, total = read_single_chunk(enc_file, 4, 0)
    with pytest.raises(IndexError):
        read_single_chunk(enc_file, 4, total)


def test_non_positive_chunk_size(enc_file):
    with pytest.raises(ValueError):
        read_single_chunk(enc_file, 0, 0)


def test_missing_file(tmp_path):
    with pytest.raises(OSError):
        read_single_chunk(tmp_path / "absent.enc", 4, 0)


def test_empty_file_has_no_chunks(tmp_path):
    path = tmp_path / "empty.enc"
    path.write_bytes(b"")
    with pytest.raises(IndexError):
        read_single_chunk(path, 4, 0)


def test_bitfield_all_when_empty():
    result = chunk_bitfield(5, [])
    assert all(result["bitfield"])
    assert len(result["bitfield"]) == 5
    assert result["chunks_held"] == list(range(5))
    assert result["chunk_count"] == 5


def test_bitfield_partial():
    held = [1, 3]
    result = chunk_bitfield(5, held)
    assert result["chunks_held"] == held
    assert sum(result["bitfield"]) == len(held)
    assert all(result["bitfield"][i] for i in held)
    assert len(result["bitfield"]) == 5


def test_bitfield_zero_count_treated_as_one():
    result = chunk_bitfield(0, [])
    assert result["chunk_count"] == 1
    assert result["bitfield"] == [True]


def test_chunk_meta_selects_fields():
    entry = {name: f"value-{name}" for name in META_FIELDS}
    entry["key_hex"] = "secret"
    meta = chunk_meta(entry)
    assert set(meta) == set(META_FIELDS)
    assert meta["encrypted_root"] == "value-encrypted_root"
    assert "key_hex" not in meta


def test_chunk_meta_missing_field():
    with pytest.raises(KeyError):
        chunk_meta({"encrypted_hash": "ab"})


def test_wrapped_chunk_round_trip(enc_file):
    wrap_dir = enc_file.parent / (enc_file.name + ".wrapped_chunks")
    wrap_dir.mkdir()
    (wrap_dir / "2").write_bytes(b"wrapped")
    assert read_wrapped_chunk(enc_file, 2) == b"wrapped"


def test_wrapped_chunk_missing(enc_file):
    with pytest.raises(FileNotFoundError) as info:
        read_wrapped_chunk(enc_file, 7)
    assert str(info.value) == WRAPPED_CHUNK_MISSING