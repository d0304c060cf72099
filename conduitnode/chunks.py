"""Chunk-level reads and metadata for encrypted content files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

META_FIELDS = (
    "encrypted_hash",
    "chunk_count",
    "chunk_size",
    "size_bytes",
    "encrypted_root",
    "plaintext_root",
    "content_hash",
)

WRAPPED_CHUNK_MISSING = "wrapped chunk not found (request transport-invoice first)"


def read_single_chunk(path: str | Path, chunk_size: int, index: int) -> tuple[bytes, int]:
    """Read chunk ``index`` of a file by seeking; return its bytes and the chunk count.

    Raises ValueError for a non-positive chunk size, IndexError when the index is
    past the last chunk, and OSError when the file cannot be read.
    """
    if chunk_size <= 0:
        raise ValueError("chunk size must be positive")
    if index < 0:
        raise IndexError("chunk index out of range")
    with open(path, "rb") as fh:
        fh.seek(0, 2)
        file_len = fh.tell()
        total_chunks = -(-file_len // chunk_size)
        if index >= total_chunks:
            raise IndexError("chunk index out of range")
        offset = index * chunk_size
        length = min(chunk_size, file_len - offset)
        fh.seek(offset)
        data = fh.read(length)
    if len(data) != length:
        raise OSError("short read of chunk")
    return data, total_chunks


def chunk_bitfield(chunk_count: int, chunks_held: Iterable[int]) -> dict[str, Any]:
    """Which chunks a node holds; an empty ``chunks_held`` means all of them."""
    total = chunk_count if chunk_count > 0 else 1
    held = list(chunks_held)
    if not held:
        return {
            "chunk_count": total,
            "bitfield": [True] * total,
            "chunks_held": list(range(total)),
        }
    held_set = set(held)
    return {
        "chunk_count": total,
        "bitfield": [i in held_set for i in range(total)],
        "chunks_held": held,
    }


def chunk_meta(entry: Mapping[str, Any]) -> dict[str, Any]:
    """The chunk metadata fields of a catalog entry."""
    return {name: entry[name] for name in META_FIELDS}


def read_wrapped_chunk(enc_file_path: str | Path, index: int) -> bytes:
    """Bytes of a wrapped chunk written next to the encrypted file."""
    chunk_path = Path(f"{enc_file_path}.wrapped_chunks") / str(index)
    try:
        return chunk_path.read_bytes()
    except OSError as exc:
        raise FileNotFoundError(WRAPPED_CHUNK_MISSING) from exc