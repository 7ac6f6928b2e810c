#!/usr/bin/env python3
"""Verify a backup tree written by wpsr against the live (rewritten) files.

Usage:
  python verify_backups.py --backup /path/to/backups [--base DIR] [--root SCAN_ROOT]

For every .html file in the backup tree the mirrored live file is located, the
backup content is run through the size suffix remover, and the result must be
byte-identical to the live file. Exits 0 if all present files match and none
are missing. Non-zero otherwise.
"""
from __future__ import annotations
import argparse, os, sys

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

from wpsr_core import remove_size_suffixes, find_html_files  # noqa: E402


def live_path_for(backup_file: str, backup_root: str, base: str, scan_root: str | None = None) -> str | None:
    """Map a backup copy back to the file it was taken from (inverse of backup_path_for)."""
    rel = os.path.relpath(backup_file, backup_root)
    candidate = os.path.join(base, rel)
    if os.path.exists(candidate):
        return candidate
    if scan_root:
        abs_root = os.path.abspath(scan_root)
        prefix = (os.path.basename(abs_root.rstrip(os.sep)) or 'root') + os.sep
        if rel.startswith(prefix):
            alt = os.path.join(abs_root, rel[len(prefix):])
            if os.path.exists(alt):
                return alt
    return None


def read_bytes(path: str) -> bytes | None:
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError:
        return None


def expected_bytes(original: bytes) -> bytes:
    text = original.decode('utf-8', errors='surrogateescape')
    return remove_size_suffixes(text).content.encode('utf-8', errors='surrogateescape')


def main(argv: list[str]) -> int:
    p = argparse.ArgumentParser(description='Verify backups against suffix-stripped live files')
    p.add_argument('--backup', required=True, help='Backup root created with --backup')
    p.add_argument('--base', default=None, help='Directory backups were mirrored from (default: current directory)')
    p.add_argument('--root', default=None, help='Scan root of the original run (for files mirrored outside --base)')
    args = p.parse_args(argv)

    if not os.path.isdir(args.backup):
        print(f"[error] Backup directory not found: {args.backup}")
        return 2
    base = args.base or os.getcwd()
    found = find_html_files(args.backup)
    for d in found.errors:
        print(f"[warn] cannot read {d.path}: {d.message}")
    missing = []
    mismatched = []
    ok = 0
    total = len(found.files)
    if not total:
        print('[warn] No backup files found; nothing to verify.')
    for idx, backup_file in enumerate(found.files, 1):
        rel = os.path.relpath(backup_file, args.backup)
        live = live_path_for(backup_file, args.backup, base, args.root)
        live_data = read_bytes(live) if live else None
        original = read_bytes(backup_file)
        if live_data is None or original is None:
            missing.append(rel)
        elif expected_bytes(original) != live_data:
            mismatched.append(rel)
        else:
            ok += 1
        if idx == 1 or idx == total or idx % 200 == 0:
            pct = int(idx * 100 / total)
            print(f"[verify] {idx}/{total} ({pct}%)")
    print(f"[verify] OK={ok} Missing={len(missing)} Mismatched={len(mismatched)} Total={total}")
    if missing:
        print('\nMissing files:')
        for m in missing[:25]:
            print('  ', m)
        if len(missing) > 25:
            print(f"  ... (+{len(missing)-25} more)")
    if mismatched:
        print('\nMismatched files:')
        for m in mismatched[:25]:
            print('  ', m)
        if len(mismatched) > 25:
            print(f"  ... (+{len(mismatched)-25} more)")
    return 0 if (ok == total and not missing and not mismatched) else 3


if __name__ == '__main__':
    raise SystemExit(main(sys.argv[1:]))
