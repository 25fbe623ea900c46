"""Command-line interface for lms2typst."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .version import __version__


def _get_usage() -> str:
    return (
        f"lms2typst {__version__}\n"
        "Usage:\n"
        "  lms2typst [--help] [--version|--ver]\n"
        "  lms2typst --sanitize INPUT --out OUTPUT [--token TOKEN] [options]\n"
        "  lms2typst --convert INPUT --out OUTPUT [options]\n"
        "  lms2typst --export --title TITLE --section NAME=PATH [--section NAME=PATH ...] --out OUTPUT [options]\n\n"
        "Options:\n"
        "  --out DIR                    With --export, write <title>.typ or <title>.pdf inside DIR\n"
        "  --token TOKEN                Append the LMS access token to LMS image URLs\n"
        "  --sanitize-first             Clean each --section file before converting it\n"
        "  --compile                    Compile the exported document to PDF with typst\n"
        "  --config PATH                Use sanitizer config JSON\n"
        "  --write-config PATH          Write default sanitizer config JSON and exit\n"
        "  --verbose                    Verbose progress logs\n"
        "  --debug                      Debug logs"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--help", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--ver", action="store_true")
    parser.add_argument("--sanitize", metavar="INPUT", help="HTML file to clean")
    parser.add_argument("--convert", metavar="INPUT", help="HTML file to convert to Typst markup")
    parser.add_argument("--export", action="store_true", help="Assemble a Typst document from --section files")
    parser.add_argument("--title", help="Document title for --export")
    parser.add_argument(
        "--section",
        action="append",
        default=[],
        metavar="NAME=PATH",
        help="Section name and HTML file for --export (repeatable, kept in order)",
    )
    parser.add_argument("--out", help="Output file")
    parser.add_argument("--token", help="LMS access token appended to LMS image URLs")
    parser.add_argument("--sanitize-first", action="store_true", help="Clean each section before converting it")
    parser.add_argument("--compile", action="store_true", help="Compile the exported document to PDF")
    parser.add_argument("--config", help="Path to a sanitizer config JSON file")
    parser.add_argument("--write-config", help="Write the default sanitizer config JSON to the given path and exit")
    parser.add_argument("--verbose", action="store_true", help="Verbose progress logs")
    parser.add_argument("--debug", action="store_true", help="Debug logs")
    return parser


def _parse_section(value: str) -> tuple[str, Path] | None:
    name, sep, raw_path = value.partition("=")
    if not sep or not name.strip() or not raw_path.strip():
        return None
    return name.strip(), Path(raw_path.strip()).expanduser().resolve()


def _read_input(path: Path) -> str | None:
    if not path.exists() or not path.is_file():
        print(f"Input file not found: {path}", file=sys.stderr)
        return None
    return path.read_text(encoding="utf-8", errors="replace")


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    args, unknown = parser.parse_known_args(argv)
    if unknown:
        print(_get_usage())
        return 2

    if not argv or args.help:
        print(_get_usage())
        return 0

    if args.version or args.ver:
        print(__version__)
        return 0

    try:
        from lms2typst import core
    except Exception as exc:
        print(f"Unable to import lms2typst core: {exc}", file=sys.stderr)
        return 6

    core.setup_logging(args.verbose, args.debug)

    if args.write_config:
        target = Path(args.write_config).expanduser().resolve()
        try:
            core.write_config_file(target)
        except OSError as exc:
            print(f"Unable to write config file {target}: {exc}", file=sys.stderr)
            return core.EXIT_OUTPUT
        if args.verbose:
            print(f"Default config written to {target}")
        return 0

    config = core.default_config()
    if args.config:
        config_path = Path(args.config).expanduser().resolve()
        if not config_path.exists() or not config_path.is_file():
            print(f"Config file not found: {config_path}", file=sys.stderr)
            return core.EXIT_INVALID_ARGS
        try:
            config = core.load_config_file(config_path)
        except ValueError as exc:
            print(str(exc), file=sys.stderr)
            return core.EXIT_INVALID_ARGS

    modes = [bool(args.sanitize), bool(args.convert), bool(args.export)]
    if sum(modes) != 1:
        print(_get_usage())
        print("Exactly one of --sanitize, --convert or --export is required", file=sys.stderr)
        return core.EXIT_INVALID_ARGS

    if not args.out:
        print("Option --out is required", file=sys.stderr)
        return core.EXIT_INVALID_ARGS
    out_path = Path(args.out).expanduser().resolve()
    if out_path.is_dir() and not args.export:
        print(f"Output path is a directory: {out_path}", file=sys.stderr)
        return core.EXIT_OUTPUT

    try:
        from lms2typst import export, sanitizer, typst
    except Exception as exc:
        print(f"Unable to import lms2typst pipeline: {exc}", file=sys.stderr)
        return 6

    if args.sanitize or args.convert:
        in_path = Path(args.sanitize or args.convert).expanduser().resolve()
        raw = _read_input(in_path)
        if raw is None:
            return core.EXIT_INVALID_ARGS
        try:
            if args.sanitize:
                result = sanitizer.sanitize(raw, args.token, config)
            else:
                result = typst.html_to_typst(raw)
        except RuntimeError as exc:
            print(str(exc), file=sys.stderr)
            return core.EXIT_INVALID_ARGS
        try:
            core.safe_write_text(out_path, result)
        except OSError as exc:
            print(f"Unable to write output {out_path}: {exc}", file=sys.stderr)
            return core.EXIT_OUTPUT
        return 0

    if not args.title or not args.title.strip():
        print("Option --title is required with --export", file=sys.stderr)
        return core.EXIT_INVALID_ARGS
    if not args.section:
        print("At least one --section NAME=PATH is required with --export", file=sys.stderr)
        return core.EXIT_INVALID_ARGS

    sections = []
    for value in args.section:
        parsed = _parse_section(value)
        if parsed is None:
            print(f"Invalid --section value (expected NAME=PATH): {value}", file=sys.stderr)
            return core.EXIT_INVALID_ARGS
        name, path = parsed
        content = _read_input(path)
        if content is None:
            return core.EXIT_INVALID_ARGS
        if args.sanitize_first:
            content = sanitizer.sanitize(content, args.token, config)
        sections.append(export.ExportSection(name=name, content=content))

    try:
        document = export.export_typst(args.title, sections)
    except core.ExportError as exc:
        print(str(exc), file=sys.stderr)
        return core.EXIT_NO_CONTENT

    if out_path.is_dir():
        suffix = ".pdf" if args.compile else ".typ"
        out_path = out_path / (export.sanitize_filename(args.title) + suffix)

    if not args.compile:
        try:
            core.safe_write_text(out_path, document)
        except OSError as exc:
            print(f"Unable to write output {out_path}: {exc}", file=sys.stderr)
            return core.EXIT_OUTPUT
        return 0

    from lms2typst import compiler

    result = compiler.compile_typst(document)
    if not result.ok or result.pdf is None:
        print(f"Typst compilation failed: {result.diagnostics}", file=sys.stderr)
        return core.EXIT_COMPILE
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(result.pdf)
    except OSError as exc:
        print(f"Unable to write output {out_path}: {exc}", file=sys.stderr)
        return core.EXIT_OUTPUT
    if args.verbose:
        print(f"PDF written to {out_path} ({len(result.pdf)} bytes)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
