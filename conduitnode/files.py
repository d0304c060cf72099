"""Serving decrypted files and checking transport requests for ad and chunk flows."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

FALLBACK_DIR = Path("/tmp")

_CONTENT_TYPES = (
    ((".png",), "image/png"),
    ((".jpg", ".jpeg"), "image/jpeg"),
    ((".gif",), "image/gif"),
    ((".mp4",), "video/mp4"),
    ((".webm",), "video/webm"),
    ((".mov",), "video/quicktime"),
    ((".txt",), "text/plain"),
)


class ChunkRequestError(ValueError):
    """A transport request named chunks that cannot be served (HTTP 400)."""

    status = 400

    def to_dict(self) -> dict[str, str]:
        return {"error": str(self)}


def content_type_for(path: str | Path) -> str:
    """Media type of a decrypted file, chosen from its extension."""
    name = str(path)
    for suffixes, media_type in _CONTENT_TYPES:
        if name.endswith(suffixes):
            return media_type
    return "application/octet-stream"


def decrypted_file(storage_dir: str | Path, filename: str) -> tuple[bytes, str]:
    """Bytes and content type of a file in the storage directory or the fallback directory.

    The storage directory wins when the file exists there. Raises FileNotFoundError
    when the chosen file cannot be read.
    """
    primary = Path(storage_dir) / filename
    path = primary if primary.exists() else FALLBACK_DIR / filename
    content_type = content_type_for(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise FileNotFoundError("not found") from exc
    return data, content_type


def validate_chunk_request(
    requested: Iterable[int], total_chunks: int, chunks_held: Iterable[int]
) -> list[int]:
    """Check requested chunk indices against the chunk count and the chunks held.

    An empty ``chunks_held`` means every chunk is held. Returns the indices in
    request order; raises ChunkRequestError on the first bad one.
    """
    held = set(chunks_held)
    indices = list(requested)
    for idx in indices:
        if idx < 0 or idx >= total_chunks:
            raise ChunkRequestError(
                f"Chunk index {idx} out of range (total: {total_chunks})"
            )
        if held and idx not in held:
            raise ChunkRequestError(f"Seeder does not hold chunk {idx}")
    return indices


def ad_creative_url(advertiser_url: str, campaign_id: Any) -> str:
    """URL of a campaign's creative on the advertiser node."""
    base = advertiser_url.rstrip("/")
    cid = campaign_id if isinstance(campaign_id, str) else ""
    return f"{base}/api/campaigns/{cid}/creative"


def file_name_of(path: str | Path) -> str:
    """The text after the last '/' of a path (empty when it ends with '/')."""
    return str(path).rsplit("/", 1)[-1]