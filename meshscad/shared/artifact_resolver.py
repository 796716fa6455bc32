"""
Resolve mesh references to local files.

A mesh reference is one of:
  - str: local file path, or an http(s) URL
  - dict: CAS artifact reference ``{"uri": ..., "sha256": ..., "filename": ...}``

Remote files are downloaded with httpx and cached by SHA-256.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx

from ..core.errors import MeshNotReady

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = ".stl"


def _sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _suffix_for(name: str) -> str:
    suffix = Path(urlparse(name).path).suffix.lower()
    return suffix or DEFAULT_SUFFIX


def mesh_display_name(mesh_ref: Any) -> str:
    """Best-effort original file name, used as context for the model."""
    if isinstance(mesh_ref, dict):
        name = mesh_ref.get("filename") or mesh_ref.get("uri") or ""
    else:
        name = str(mesh_ref or "")
    return Path(urlparse(name).path).name


async def resolve_mesh_path(
    mesh_ref: Any,
    cache_dir: Path,
    http_timeout: float = 120.0,
) -> Path:
    cache_dir.mkdir(parents=True, exist_ok=True)

    if isinstance(mesh_ref, (str, Path)):
        ref = str(mesh_ref)
        if ref.startswith(("http://", "https://")):
            return await _download_and_cache(ref, None, cache_dir, http_timeout)
        local = Path(ref)
        if local.is_file():
            return local
        raise MeshNotReady(f"Mesh file not found: {ref}")

    if isinstance(mesh_ref, dict):
        uri = mesh_ref.get("uri", "")
        sha256 = mesh_ref.get("sha256")

        if not uri:
            raise ValueError("Artifact reference missing 'uri' field")

        suffix = _suffix_for(mesh_ref.get("filename") or uri)
        if sha256:
            cached = cache_dir / f"{sha256}{suffix}"
            if cached.is_file():
                logger.info("CAS cache hit: %s", sha256[:12])
                return cached

        return await _download_and_cache(uri, sha256, cache_dir, http_timeout, suffix=suffix)

    raise TypeError(f"Unsupported mesh_path type: {type(mesh_ref)}")


async def _download_and_cache(
    url: str,
    expected_sha256: str | None,
    cache_dir: Path,
    timeout: float,
    suffix: str | None = None,
) -> Path:
    logger.info("Downloading artifact: %s", url[:120])
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout)) as client:
        resp = await client.get(url)
        resp.raise_for_status()
        data = resp.content

    actual_sha = _sha256_bytes(data)
    if expected_sha256 and actual_sha != expected_sha256:
        raise ValueError(
            f"SHA-256 mismatch: expected {expected_sha256[:16]}... got {actual_sha[:16]}..."
        )

    dest = cache_dir / f"{actual_sha}{suffix or _suffix_for(url)}"
    if not dest.exists():
        dest.write_bytes(data)
        logger.info("Cached artifact: %s (%d bytes)", actual_sha[:12], len(data))

    return dest
