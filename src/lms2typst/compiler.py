"""Adapter around the external ``typst`` compiler."""

from __future__ import annotations

import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .core import LOG, get_typst_bin

DEFAULT_TIMEOUT = 300


@dataclass
class CompileResult:
    ok: bool
    pdf: Optional[bytes]
    diagnostics: str
    returncode: Optional[int] = None


def compile_typst(document: str, *, typst_bin: Optional[str] = None, timeout: int = DEFAULT_TIMEOUT) -> CompileResult:
    binary = typst_bin or get_typst_bin()
    with tempfile.TemporaryDirectory(prefix="lms2typst-") as tmp:
        source_path = Path(tmp) / "document.typ"
        pdf_path = Path(tmp) / "document.pdf"
        source_path.write_text(document, encoding="utf-8")

        try:
            result = subprocess.run(
                [binary, "compile", str(source_path), str(pdf_path)],
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError:
            LOG.error("Typst binary not found: %s", binary)
            return CompileResult(ok=False, pdf=None, diagnostics=f"{binary} not found. Please install the Typst CLI.")
        except OSError as exc:
            LOG.error("Unable to run %s: %s", binary, exc)
            return CompileResult(ok=False, pdf=None, diagnostics=f"Failed to run {binary}: {exc}")
        except subprocess.TimeoutExpired:
            LOG.error("Typst timed out after %d seconds", timeout)
            return CompileResult(ok=False, pdf=None, diagnostics=f"{binary} timed out after {timeout} seconds")

        diagnostics = (result.stderr or "").strip()
        if result.returncode != 0:
            LOG.error("Typst compilation failed: %s", diagnostics)
            return CompileResult(
                ok=False,
                pdf=None,
                diagnostics=diagnostics or f"{binary} exited with code {result.returncode}",
                returncode=result.returncode,
            )
        if not pdf_path.exists() or pdf_path.stat().st_size == 0:
            LOG.error("Typst reported success but no PDF was written")
            return CompileResult(
                ok=False,
                pdf=None,
                diagnostics=diagnostics or "PDF file was not created",
                returncode=result.returncode,
            )
        pdf = pdf_path.read_bytes()

    LOG.info("PDF generated successfully: %d bytes", len(pdf))
    return CompileResult(ok=True, pdf=pdf, diagnostics=diagnostics, returncode=result.returncode)
