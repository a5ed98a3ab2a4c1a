"""
Integrity gate — only run a decoder binary whose SHA-256 is allowlisted.

A file that cannot be read is an error for the caller, never a pass.
"""
import hashlib
import logging
import os

from known_hashes import KNOWN_HASHES
from platform_tag import Platform

log = logging.getLogger("integrity_gate")

ADDITIONAL_HASHES_FILE = "additional_hashes.txt"
CHUNK_SIZE = 64 * 1024


def file_digest(path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def _load_hashes(path):
    """Load digests from a file (one per line, # comments)."""
    hashes = []
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.split("#", 1)[0].strip()
                if line:
                    hashes.append(line.lower())
    except FileNotFoundError:
        pass
    return hashes


def load_allowlist(platform: Platform, extra_dir=None) -> frozenset:
    allowed = {h.lower() for h in KNOWN_HASHES[platform]}
    if extra_dir is not None:
        extra = _load_hashes(os.path.join(extra_dir, ADDITIONAL_HASHES_FILE))
        if extra:
            log.debug(f"Loaded {len(extra)} additional hashes")
        allowed.update(extra)
    return frozenset(allowed)


def verify(path, allowed) -> bool:
    """True iff the file's digest is in the allowlist (case-insensitive)."""
    digest = file_digest(path)
    ok = digest in {h.lower() for h in allowed}
    log.info(f"Integrity {path}: {digest} {'accepted' if ok else 'REJECTED'}")
    return ok
