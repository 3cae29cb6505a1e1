"""Bootstrapper: install a missing backend tool into a pyve sandbox.

Only micromamba can be bootstrapped. Interpreters for the venv backend come
from asdf, pyenv or the system and are never downloaded.

Behavior:
- Ask a :class:`~pyve.prompts.ChoiceProvider` for the target unless one is given
- Download the platform tarball with httpx into a staging dir inside the sandbox
- Extract only ``bin/micromamba``, optionally verify its sha256, chmod 0755
- Atomic rename into ``<sandbox>/micromamba``, then run ``--version``
- Write a ``micromamba.json`` receipt next to the binary
- On any failure (or Ctrl-C) remove staging, the half-installed binary and
  any sandbox directory this call created
"""

from __future__ import annotations

import json
import os
import platform
import shutil
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

import httpx
from rich import print as rprint

from pyve.config import atomic_write_text
from pyve.context import ProjectContext
from pyve.errors import BootstrapError, PyveError
from pyve.installer.sandboxes import Sandbox, micromamba_download_url, sandbox_for
from pyve.installer.tools import probe_version
from pyve.logging import get_logger
from pyve.prompts import BootstrapChoice, ChoiceProvider
from pyve.security.archive import ArchiveError, extract_member
from pyve.signing.checks import DigestMismatch, sha256, verify_sha256
from pyve.types import Backend, SandboxTarget, ToolLocation

ARCHIVE_MEMBER = "bin/micromamba"
RECEIPT_NAME = "micromamba.json"
DOWNLOAD_TIMEOUT = 120.0
INSTALL_DOCS = "https://mamba.readthedocs.io/en/latest/installation.html"

log = get_logger(__name__)


class BootstrapState(str, Enum):
    NOT_FOUND = "not_found"
    RESOLVING = "resolving"
    INSTALLING = "installing"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass
class _Attempt:
    backend: Backend
    state: BootstrapState = BootstrapState.NOT_FOUND

    def to(self, state: BootstrapState, detail: str = "") -> None:
        log.info(
            f"bootstrap {self.backend.tool_name}: {self.state.value} -> {state.value}"
            + (f" ({detail})" if detail else "")
        )
        self.state = state


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _package_manager_hint() -> str:
    if platform.system() == "Darwin":
        return "brew install micromamba"
    return f"See: {INSTALL_DOCS}"


def _pick_target(
    backend: Backend, target: SandboxTarget | None, choices: ChoiceProvider | None
) -> SandboxTarget:
    if target is not None:
        return target
    if choices is None:
        raise BootstrapError(
            "no install target given",
            hint="pyve init --auto-bootstrap --bootstrap-to project",
        )
    choice = choices.bootstrap_target(backend)
    if choice is BootstrapChoice.PROJECT:
        return SandboxTarget.PROJECT
    if choice is BootstrapChoice.USER:
        return SandboxTarget.USER
    if choice is BootstrapChoice.SYSTEM:
        hint = _package_manager_hint()
        rprint("To install via package manager:")
        rprint(f"  {hint}")
        rprint("After installation, run 'pyve init' again.")
        raise BootstrapError("install via the system package manager, then re-run", hint=hint)
    raise BootstrapError(
        "installation aborted",
        hint="Install micromamba manually and run 'pyve init' again",
    )


def _first_missing_ancestor(path: Path) -> Path | None:
    """Return the highest directory on the way to *path* that does not exist yet."""
    missing = None
    for p in (path, *path.parents):
        if p.exists():
            break
        missing = p
    return missing


def _download(client: httpx.Client, url: str, dest: Path) -> None:
    with client.stream("GET", url) as r:
        r.raise_for_status()
        with open(dest, "wb") as out:
            for chunk in r.iter_bytes():
                out.write(chunk)


def _write_receipt(sandbox: Sandbox, *, url: str, digest: str, version: str) -> Path:
    receipt = {
        "tool": "micromamba",
        "url": url,
        "sha256": digest,
        "version": version,
        "installed_at": datetime.now(UTC).isoformat(),
    }
    path = sandbox.bin_dir / RECEIPT_NAME
    atomic_write_text(path, json.dumps(receipt, indent=2))
    return path


def _install_micromamba(
    ctx: ProjectContext,
    sandbox: Sandbox,
    url: str,
    client: httpx.Client,
    expected_sha256: str | None,
) -> ToolLocation:
    final = sandbox.executable("micromamba")
    created_root = _first_missing_ancestor(sandbox.bin_dir)
    sandbox.bin_dir.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=sandbox.bin_dir))
    placed = False

    try:
        archive = staging / "micromamba.tar.bz2"
        _download(client, url, archive)

        staged_bin = extract_member(archive, ARCHIVE_MEMBER, staging / "micromamba")
        digest = verify_sha256(staged_bin, expected_sha256) if expected_sha256 else sha256(staged_bin)
        os.chmod(staged_bin, 0o755)

        os.replace(staged_bin, final)
        placed = True

        version = probe_version(final, ctx.environ)
        if version is None:
            raise BootstrapError(
                "installed micromamba did not report a version",
                hint=f"Check that {final} runs on this platform",
            )
        _write_receipt(sandbox, url=url, digest=digest, version=version)
        return ToolLocation(
            backend=Backend.MICROMAMBA,
            executable_path=final,
            origin=sandbox.origin,
            version=version,
        )
    except BaseException:
        # Cleanup on error (including KeyboardInterrupt)
        try:
            if placed:
                final.unlink(missing_ok=True)
            if created_root is not None and created_root.exists():
                shutil.rmtree(created_root, ignore_errors=True)
        finally:
            raise
    finally:
        shutil.rmtree(staging, ignore_errors=True)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def bootstrap(
    ctx: ProjectContext,
    backend: Backend,
    *,
    target: SandboxTarget | None = None,
    choices: ChoiceProvider | None = None,
    client: httpx.Client | None = None,
    url: str | None = None,
    expected_sha256: str | None = None,
) -> ToolLocation:
    """Install the tool for *backend* into a sandbox and return its location.

    Parameters
    ----------
    target:
        Sandbox to install into. When None, *choices* is asked (interactive).
    client:
        httpx client used for the download; tests pass one with a
        ``MockTransport``.
    url:
        Override the download URL (defaults to the platform's micro.mamba.pm URL).
    expected_sha256:
        Verify the extracted binary against this digest.
    """
    attempt = _Attempt(backend)
    if backend is Backend.VENV:
        attempt.to(BootstrapState.FAILED, "venv interpreters are not bootstrapped")
        raise BootstrapError(
            "python interpreters cannot be bootstrapped",
            hint="Install Python with asdf or pyenv, then run 'pyve python-version X.Y.Z'",
        )
    if backend is not Backend.MICROMAMBA:
        raise ValueError(f"Unhandled backend: {backend}")

    attempt.to(BootstrapState.RESOLVING)
    try:
        chosen = _pick_target(backend, target, choices)
        url = url or micromamba_download_url()
        if url is None:
            raise BootstrapError(
                f"unsupported platform: {platform.system()} {platform.machine()}",
                hint=_package_manager_hint(),
            )
        sandbox = sandbox_for(ctx, chosen)
        attempt.to(BootstrapState.INSTALLING, f"{url} -> {sandbox.bin_dir}")

        own_client = client is None
        http = client or httpx.Client(follow_redirects=True, timeout=DOWNLOAD_TIMEOUT)
        try:
            location = _install_micromamba(ctx, sandbox, url, http, expected_sha256)
        finally:
            if own_client:
                http.close()
    except PyveError as e:
        attempt.to(BootstrapState.FAILED, e.message)
        raise
    except httpx.HTTPError as e:
        attempt.to(BootstrapState.FAILED, str(e))
        raise BootstrapError(f"download failed: {e}", hint="Check network access and retry") from e
    except (ArchiveError, DigestMismatch, OSError) as e:
        attempt.to(BootstrapState.FAILED, str(e))
        raise BootstrapError(str(e)) from e
    except KeyboardInterrupt:
        attempt.to(BootstrapState.FAILED, "interrupted")
        raise

    attempt.to(BootstrapState.INSTALLED, str(location.executable_path))
    return location
