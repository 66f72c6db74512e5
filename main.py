#!/usr/bin/env python3
"""
GAX Song Ripper — Entry Point.

Usage:
    python main.py -i game.gba                 # scan + export to ./game/
    python main.py -i game.gba -o out -l logs  # with per-song decode logs
    python main.py -i game.gba --preview       # detect without exporting
"""

APP_VERSION = "1.0.0"

import os
import re
import sys
import logging
import argparse


def _parse_int(text: str) -> int:
    try:
        return int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}")


def _parse_version(text: str):
    from gaxscan.versions import VersionInfo

    m = re.fullmatch(r"(\d+)(?:\.(\d+)([A-Za-z]*))?", text.strip())
    if not m:
        raise argparse.ArgumentTypeError(f"not a GAX version: {text!r}")
    return VersionInfo(
        major=int(m.group(1)),
        minor=int(m.group(2) or 0),
        variant=m.group(3) or "",
        raw=text,
    )


def setup_logging(verbose: bool, log_file: str = ""):
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s" if not verbose else "%(levelname)s %(name)s: %(message)s",
        handlers=handlers,
    )


def cli_mode(args):
    from gaxscan.errors import GaxScanError
    from gaxscan.manager import RipManager
    from gaxscan.scanner import ScanConfig, ScanProgress

    print("=" * 60)
    print(f"  GAX Song Ripper  v{APP_VERSION}")
    print("  Brute-force GAX song discovery in GBA ROM images")
    print("=" * 60)
    print()

    input_path = os.path.abspath(args.input)
    output_dir = args.output or os.path.splitext(os.path.basename(input_path))[0]

    config = ScanConfig(
        base_address=args.base,
        forced_version=args.major,
        find_orphans=not args.no_orphans,
    )

    print(f"Input:   {input_path}")
    print(f"Output:  {output_dir if not args.preview else '(preview)'}")
    if args.address is not None:
        print(f"Song:    0x{args.address:08X}")
    print()

    ll = 0

    def draw(line: str):
        nonlocal ll
        pad = max(0, ll - len(line))
        sys.stdout.write("\r" + line + " " * pad)
        sys.stdout.flush()
        ll = len(line)

    def on_progress(p: ScanProgress):
        if p.phase == "done":
            draw("")
            sys.stdout.write("\r")
            return
        pct = p.progress_percent
        bw = 30
        filled = int(bw * pct / 100)
        bar = "█" * filled + "░" * (bw - filled)
        draw(f"  {p.phase:8s} [{bar}] {pct:5.1f}%  Found: {p.songs_found}")

    def on_export(i, total, song):
        if song is None:
            draw(f"  Converting: finished ({total} songs)")
            sys.stdout.write("\n")
            return
        draw(f"  Converting {i}/{total}: {song.display_name}")

    interactive = sys.stdout.isatty() and not args.verbose
    try:
        manager = RipManager(config)
        manager.set_callbacks(
            on_progress=on_progress if interactive else None,
            on_export=on_export if interactive else None,
        )
        session = manager.run(
            input_path,
            output_dir,
            log_dir=args.log,
            channels=args.channels,
            preview_only=args.preview,
            address=args.address,
        )
    except GaxScanError as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)

    print()
    print("─" * 60)
    if session.version_forced:
        tag = " (forced)"
    elif session.version_found:
        tag = ""
    else:
        tag = " (assumed)"
    print(f"  GAX version: {session.version_label}{tag}")
    print(f"  Songs:       {len(session.songs)} ({session.orphan_count} orphans)")
    if session.renamed:
        print(f"  Renamed:     {session.renamed} (duplicate names)")
    print("─" * 60)

    for song in session.songs:
        tag = " [orphan]" if song.is_orphan else ""
        print(f"    {song.label}  {song.display_name}  ({song.artist}){tag}")

    print(f"\n  Done in {session.duration_human}")
    if not args.preview and session.songs:
        print(f"  Samples: {len(session.exported_files)} file(s) in {output_dir}")
        if session.failed:
            print(f"  Failed:  {', '.join(session.failed)}")
        print(f"  Report:  {session.report_path}")
    elif args.preview:
        print("  (Preview mode — files not saved)")
    print()


def main():
    from gaxscan.rom import ROM_BASE

    parser = argparse.ArgumentParser(
        description="Find and export GAX songs from a GBA ROM image.")
    parser.add_argument("-i", "--input", required=True, help="ROM image to scan")
    parser.add_argument("-o", "--output", default="",
                        help="Output directory (default: ROM basename)")
    parser.add_argument("-l", "--log", default="",
                        help="Directory for per-song decode logs (disabled if empty)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    parser.add_argument("--log-file", default="", help="Also write log output here")
    parser.add_argument("--base", type=_parse_int, default=ROM_BASE,
                        help="Address the image is mapped at (default 0x08000000)")
    parser.add_argument("--major", type=_parse_version, default=None,
                        help="Force GAX version (e.g. 3 or 2.02A), skip version scan")
    parser.add_argument("-a", "--address", type=_parse_int, default=None,
                        help="Decode the single song at this address")
    parser.add_argument("--channels", type=int, default=1,
                        help="Channel count written to WAV files (1 or 2)")
    parser.add_argument("--no-orphans", action="store_true",
                        help="Skip the backward-chain search for unreferenced songs")
    parser.add_argument("--preview", action="store_true", help="Detect without exporting")
    args = parser.parse_args()

    setup_logging(args.verbose, args.log_file)
    cli_mode(args)


if __name__ == "__main__":
    main()
