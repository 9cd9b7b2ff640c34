"""Package version and the git checkout it was built from."""
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, Optional

__version__ = "0.1.0"

PACKAGE_NAME = "temporalmix"
_PACKAGE_DIR = Path(__file__).resolve().parent


def _git(*args: str) -> Optional[subprocess.CompletedProcess]:
    """Run git inside the package directory; None when git is not installed."""
    try:
        return subprocess.run(
            ["git", *args], cwd=_PACKAGE_DIR, capture_output=True, text=True, timeout=5
        )
    except (OSError, subprocess.TimeoutExpired):
        return None


def _commit_hash() -> str:
    proc = _git("rev-parse", "--short=7", "HEAD")
    if proc is None or proc.returncode != 0:
        return "unknown"
    return proc.stdout.strip()


def _has_local_changes() -> bool:
    # exit status 1 means tracked files differ from HEAD
    proc = _git("diff", "--quiet", "HEAD", "--")
    return proc is not None and proc.returncode == 1


def get_build_meta() -> Dict[str, str]:
    """Name, version, short commit hash and a dirty flag ("1"/"0")."""
    git_hash = _commit_hash()
    dirty = git_hash != "unknown" and _has_local_changes()
    return {
        "name": PACKAGE_NAME,
        "version": __version__,
        "git_hash": git_hash,
        "dirty": "1" if dirty else "0",
    }


def get_version_string() -> str:
    meta = get_build_meta()
    text = f"{meta['name']} {meta['version']}"
    if meta["git_hash"] != "unknown":
        text += f" ({meta['git_hash']}{'+dirty' if meta['dirty'] == '1' else ''})"
    return text
