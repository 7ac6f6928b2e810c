"""Core helper + headless logic for the WordPress Size Suffix Remover.

Separated from the GUI so unit tests and headless/CI usage do not require Qt.

Pipeline: discover HTML files -> strip "-<w>x<h>" size suffixes from image
references -> (optional) mirror the original into a backup tree -> write back
-> summarise. The dispatcher (`wpsr.py`) and GUI (`wpsr_gui.py`) are thin
layers over the objects and functions defined here.
"""
from __future__ import annotations
import os, sys, subprocess, shutil, tempfile, time, json, uuid, re
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Optional, List, Dict

__version__ = "1.0.2"

# ---------------- Exit Codes & Schema ----------------
# These provide stable semantics for automation / CI integration.
SCHEMA_VERSION = 1
EXIT_SUCCESS = 0
EXIT_GENERIC_FAILURE = 1
EXIT_VERIFY_FAILED = 3
EXIT_INVALID_ROOT = 10
EXIT_INVALID_BACKUP = 11
EXIT_BACKUP_CREATE_FAILED = 12
EXIT_CONFIG_ERROR = 16

HTML_EXTENSIONS = ('.html',)
IMAGE_EXTENSIONS = ('jpg', 'jpeg', 'png', 'gif', 'webp', 'svg', 'bmp', 'tiff')
PREVIEW_LIMIT = 5

# One or more stacked "-<w>x<h>" groups directly before an image extension.
SIZE_SUFFIX_RE = re.compile(
    r"((?:-\d+x\d+)+)(\.(?:" + '|'.join(IMAGE_EXTENSIONS) + r"))",
    re.IGNORECASE | re.ASCII,
)

# ---------------- Errors ----------------
class StartupError(Exception):
    """Fatal configuration problem detected before any file is touched."""
    def __init__(self, message: str, exit_code: int = EXIT_GENERIC_FAILURE):
        super().__init__(message)
        self.exit_code = exit_code

class BackupError(Exception):
    def __init__(self, path: str, backup_path: str, cause: OSError):
        super().__init__(f"{cause.strerror or cause} ({backup_path})")
        self.path = path
        self.backup_path = backup_path
        self.cause = cause

# ---------------- Matcher / Rewriter ----------------
@dataclass(frozen=True)
class MatchRecord:
    matched: str
    replacement: str
    offset: int

@dataclass
class RewriteResult:
    content: str
    matches: List[MatchRecord] = field(default_factory=list)

    @property
    def count(self) -> int: return len(self.matches)

    @property
    def changed(self) -> bool: return bool(self.matches)

def remove_size_suffixes(text: str) -> RewriteResult:
    """Strip WordPress size suffixes from every image reference in ``text``.

    The substitution callback records each match as it is replaced, so the
    returned match list always describes exactly the rewrite that happened.
    Offsets are character positions in the original text.
    """
    matches: List[MatchRecord] = []
    def _repl(m: re.Match) -> str:
        ext = m.group(2)
        matches.append(MatchRecord(m.group(0), ext, m.start()))
        return ext
    new_text = SIZE_SUFFIX_RE.sub(_repl, text)
    return RewriteResult(new_text, matches)

def count_size_suffixes(text: str) -> int:
    return sum(1 for _ in SIZE_SUFFIX_RE.finditer(text or ''))

def format_match_preview(matches: List[MatchRecord], limit: int = PREVIEW_LIMIT) -> List[str]:
    lines = [f"{i}. {m.matched} -> {m.replacement}" for i, m in enumerate(matches[:limit], 1)]
    if len(matches) > limit:
        lines.append(f"... and {len(matches) - limit} more")
    return lines

# ---------------- File Discovery ----------------
@dataclass(frozen=True)
class DiscoveryError:
    path: str
    message: str

@dataclass
class DiscoveryResult:
    files: List[str] = field(default_factory=list)
    errors: List[DiscoveryError] = field(default_factory=list)

def _is_html(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in HTML_EXTENSIONS

def find_html_files(root: str, exclude: Optional[List[str]] = None) -> DiscoveryResult:
    """Collect HTML files at any depth under ``root`` (depth-first, sorted listing order).

    Nothing is printed here: unreadable directories or entries are returned as
    DiscoveryError items and the walk continues with their siblings.
    Symlinked directories are not followed.
    """
    result = DiscoveryResult()
    skip = {os.path.normcase(os.path.abspath(p)) for p in (exclude or []) if p}
    def _listing(directory: str) -> list:
        try:
            with os.scandir(directory) as it:
                return sorted(it, key=lambda e: e.name, reverse=True)
        except OSError as e:
            result.errors.append(DiscoveryError(directory, e.strerror or str(e)))
            return []
    # reverse-sorted stack pops entries in depth-first name order
    pending = _listing(root)
    while pending:
        entry = pending.pop()
        try:
            if entry.is_dir(follow_symlinks=False):
                if os.path.normcase(os.path.abspath(entry.path)) in skip:
                    continue
                pending.extend(_listing(entry.path))
            elif entry.is_file() and _is_html(entry.name):
                result.files.append(entry.path)
        except OSError as e:
            result.errors.append(DiscoveryError(entry.path, e.strerror or str(e)))
    return result

# ---------------- Backup Writer ----------------
def backup_path_for(file_path: str, backup_root: str, base: Optional[str] = None, scan_root: Optional[str] = None) -> str:
    """Mirror ``file_path`` under ``backup_root`` relative to ``base`` (cwd by default).

    If the relative path would climb out of ``base`` the file is mirrored
    relative to ``scan_root`` instead, under a folder named after that root.
    """
    base = base or os.getcwd()
    abs_file = os.path.abspath(file_path)
    try:
        rel = os.path.relpath(abs_file, os.path.abspath(base))
    except ValueError:  # different drive on Windows
        rel = None
    if rel is None or rel == os.pardir or rel.startswith(os.pardir + os.sep):
        if scan_root:
            abs_root = os.path.abspath(scan_root)
            rel = os.path.join(os.path.basename(abs_root.rstrip(os.sep)) or 'root', os.path.relpath(abs_file, abs_root))
        else:
            rel = os.path.basename(abs_file)
    return os.path.join(backup_root, rel)

def create_backup(file_path: str, backup_root: str, base: Optional[str] = None, scan_root: Optional[str] = None) -> str:
    """Copy the untouched original into the backup tree; returns the backup path."""
    dest = backup_path_for(file_path, backup_root, base, scan_root)
    try:
        os.makedirs(os.path.dirname(dest), exist_ok=True)
        shutil.copy2(file_path, dest)
    except OSError as e:
        raise BackupError(file_path, dest, e) from e
    return dest

# ---------------- Run configuration / results ----------------
@dataclass(frozen=True)
class RunConfig:
    root: str
    backup: Optional[str] = None
    dry_run: bool = False
    backup_base: Optional[str] = None     # mirror base for backups (cwd when None)
    json_logs: bool = False
    events_file: Optional[str] = None     # optional NDJSON event sink
    progress_mode: str = 'plain'          # 'plain' or 'rich'

@dataclass
class RunStats:
    files_scanned: int = 0
    files_modified: int = 0
    total_replacements: int = 0
    backups_created: int = 0
    errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            'files_scanned': self.files_scanned, 'files_modified': self.files_modified,
            'total_replacements': self.total_replacements, 'backups_created': self.backups_created,
            'errors': self.errors,
        }

# per-file terminal states
STATE_NO_CHANGE = 'no_change'
STATE_WRITTEN = 'written'
STATE_DRY_RUN = 'dry_run'
STATE_READ_ERROR = 'read_error'
STATE_BACKUP_ERROR = 'backup_error'
STATE_WRITE_ERROR = 'write_error'
ERROR_STATES = (STATE_READ_ERROR, STATE_BACKUP_ERROR, STATE_WRITE_ERROR)

@dataclass
class FileOutcome:
    path: str
    state: str
    replacements: int = 0
    backup_path: Optional[str] = None
    error: Optional[str] = None
    preview: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool: return self.state in ERROR_STATES

@dataclass
class RunResult:
    success: bool
    stats: RunStats
    outcomes: List[FileOutcome] = field(default_factory=list)
    discovery_errors: List[DiscoveryError] = field(default_factory=list)
    timings: Dict[str, float] = field(default_factory=dict)
    run_id: Optional[str] = None

class RunCallbacks:
    """Interface for GUI / CLI progress integration (all optional)."""
    def log(self, message: str): ...  # pragma: no cover - interface stub
    def error(self, message: str): ...
    def phase(self, phase: str, pct: int): ...
    def file_done(self, outcome: FileOutcome, index: int, total: int): ...

# ---------------- Optional Rich Progress Callback -----------------
class RichCallbacks(RunCallbacks):  # pragma: no cover - UI layer exercised indirectly
    def __init__(self):
        self._rich_available = False
        self._progress = None
        self._task = None
        try:
            from rich.console import Console
            from rich.progress import Progress, BarColumn, TextColumn, TimeElapsedColumn, MofNCompleteColumn
            self._console = Console()
            self._err_console = Console(stderr=True)
            self._Progress = Progress
            self._columns = [
                TextColumn("[bold cyan]{task.fields[phase]:>9}[/]"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
            ]
            self._rich_available = True
        except Exception:
            pass
    def start(self):
        if self._rich_available:
            self._progress = self._Progress(*self._columns, console=self._console, transient=False)
            self._progress.start()
    def stop(self):
        if self._progress:
            try: self._progress.stop()
            except Exception: pass
    def log(self, message: str):
        if self._progress: self._progress.console.print(message, markup=False, highlight=False)
        else: print(message)
    def error(self, message: str):
        self._err_console.print(message, style='red', markup=False, highlight=False)
    def file_done(self, outcome: FileOutcome, index: int, total: int):
        if not self._progress: return
        if self._task is None:
            self._task = self._progress.add_task(description="", total=total or 1, phase='rewrite')
        self._progress.update(self._task, completed=index)

def _invoke(cb, name: str, *a):
    if cb is None: return
    fn = getattr(cb, name, None)
    if callable(fn):
        try: fn(*a)
        except Exception: pass

# ---------------- Startup validation ----------------
def validate_run_config(cfg: RunConfig, create_backup_root: bool = True) -> None:
    """Raise StartupError when the root / backup arguments cannot be used.

    Creates the backup root when it is missing (skipped for dry runs).
    """
    if not cfg.root:
        raise StartupError("No directory path provided.", EXIT_GENERIC_FAILURE)
    if not os.path.exists(cfg.root):
        raise StartupError(f"Directory '{cfg.root}' does not exist.", EXIT_INVALID_ROOT)
    if not os.path.isdir(cfg.root):
        raise StartupError(f"'{cfg.root}' is not a directory.", EXIT_INVALID_ROOT)
    if not cfg.backup:
        return
    if os.path.abspath(cfg.backup) == os.path.abspath(cfg.root):
        raise StartupError("Backup path must differ from the directory being processed.", EXIT_INVALID_BACKUP)
    if os.path.exists(cfg.backup):
        if not os.path.isdir(cfg.backup):
            raise StartupError(f"Backup path '{cfg.backup}' is not a directory.", EXIT_INVALID_BACKUP)
        return
    if cfg.dry_run or not create_backup_root:
        return
    try:
        os.makedirs(cfg.backup, exist_ok=True)
    except OSError as e:
        raise StartupError(f"Cannot create backup directory '{cfg.backup}': {e.strerror or e}", EXIT_BACKUP_CREATE_FAILED) from e

# ---------------- File IO (scoped per operation) ----------------
def _read_text(path: str) -> str:
    with open(path, 'r', encoding='utf-8', errors='surrogateescape', newline='') as f:
        return f.read()

def _write_text(path: str, text: str) -> None:
    """Replace ``path`` atomically: the original stays intact unless the new content is fully written."""
    target = os.path.realpath(path)
    fd, tmp = tempfile.mkstemp(prefix='.wpsr-', suffix='.tmp', dir=os.path.dirname(target))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8', errors='surrogateescape', newline='') as f:
            f.write(text)
        shutil.copymode(target, tmp)
        os.replace(tmp, target)
    except Exception:
        try: os.unlink(tmp)
        except OSError: pass
        raise

# ---------------- Per-file processing ----------------
def process_file(path: str, cfg: RunConfig, stats: RunStats, callbacks: Optional[RunCallbacks] = None) -> FileOutcome:
    """Run one file through read -> match -> (backup) -> write and fold the result into ``stats``."""
    def log(msg: str): _invoke(callbacks, 'log', msg)
    def err(msg: str): _invoke(callbacks, 'error', msg)
    log(f"Processing file: {path}")
    try:
        content = _read_text(path)
    except OSError as e:
        err(f"  Error reading {path}: {e.strerror or e}")
        stats.errors += 1
        return FileOutcome(path, STATE_READ_ERROR, error=f"read: {e.strerror or e}")
    result = remove_size_suffixes(content)
    if not result.changed:
        log("  No changes needed")
        return FileOutcome(path, STATE_NO_CHANGE)
    preview = format_match_preview(result.matches)
    log(f"  Found {result.count} image size suffixes to remove:")
    for line in preview:
        log(f"    {line}")
    if cfg.dry_run:
        log(f"  Dry run: File would be updated with {result.count} replacements")
        stats.files_modified += 1
        stats.total_replacements += result.count
        return FileOutcome(path, STATE_DRY_RUN, result.count, preview=preview)
    backup_dest = None
    if cfg.backup:
        try:
            backup_dest = create_backup(path, cfg.backup, cfg.backup_base, cfg.root)
        except BackupError as e:
            err(f"  Error creating backup for {path}: {e}")
            err("  Skipping file due to backup failure")
            stats.errors += 1
            return FileOutcome(path, STATE_BACKUP_ERROR, result.count, backup_path=e.backup_path,
                               error=f"backup: {e}", preview=preview)
        stats.backups_created += 1
    try:
        _write_text(path, result.content)
    except OSError as e:
        err(f"  Error writing {path}: {e.strerror or e}")
        stats.errors += 1
        return FileOutcome(path, STATE_WRITE_ERROR, result.count, backup_path=backup_dest,
                           error=f"write: {e.strerror or e}", preview=preview)
    log(f"  Updated file with {result.count} replacements")
    stats.files_modified += 1
    stats.total_replacements += result.count
    return FileOutcome(path, STATE_WRITTEN, result.count, backup_path=backup_dest, preview=preview)

def format_summary(stats: RunStats, cfg: RunConfig) -> List[str]:
    lines = [
        "Summary:",
        f"  Total files scanned: {stats.files_scanned}",
        f"  Files with WordPress size suffixes: {stats.files_modified}",
        f"  Total suffixes found: {stats.total_replacements}",
    ]
    if cfg.backup and not cfg.dry_run:
        lines.append(f"  Backup files created: {stats.backups_created}")
    lines.append(f"  Errors encountered: {stats.errors}")
    return lines

# ---------------- Orchestrator ----------------
def run_remover(cfg: RunConfig, callbacks: Optional[RunCallbacks] = None) -> RunResult:
    """Orchestrate discovery, rewriting, backups and the final summary.

    Startup validation must already have passed (see validate_run_config);
    from here on only per-file errors occur and none of them abort the run.
    """
    t0 = time.time()
    run_id = uuid.uuid4().hex
    seq_counter = {'n': 0}
    def log(msg: str): _invoke(callbacks, 'log', msg)
    def err(msg: str): _invoke(callbacks, 'error', msg)
    # Utility json log helper with envelope
    def j(event: str, **data):
        if not cfg.json_logs and not cfg.events_file:
            return
        seq_counter['n'] += 1
        payload = {
            'event': event,
            'ts': datetime.now(timezone.utc).isoformat(),
            'seq': seq_counter['n'],
            'run_id': run_id,
            'schema_version': SCHEMA_VERSION,
            'tool_version': __version__,
            **data
        }
        if cfg.json_logs:
            log(json.dumps(payload))
        if cfg.events_file:
            try:
                with open(cfg.events_file, 'a', encoding='utf-8') as ef:
                    ef.write(json.dumps(payload) + '\n')
            except OSError as e:
                err(f"[events] cannot write {cfg.events_file}: {e.strerror or e}")

    stats = RunStats()
    log("WordPress Image Size Suffix Remover")
    log("===================================")
    log(f"Scanning directory: {cfg.root}")
    if cfg.backup:
        log(f"Backup directory: {cfg.backup}")
    if cfg.dry_run:
        log("Dry run: No files will be modified")
    log("")
    j('start', root=cfg.root, backup=cfg.backup, dry_run=cfg.dry_run)

    _invoke(callbacks, 'phase', 'discover', 0)
    discovery = find_html_files(cfg.root, exclude=[cfg.backup] if cfg.backup else None)
    for d in discovery.errors:
        err(f"Error accessing {d.path}: {d.message}")
        j('discovery_error', path=d.path, error=d.message)
    stats.errors += len(discovery.errors)
    stats.files_scanned = len(discovery.files)
    _invoke(callbacks, 'phase', 'discover', 100)
    t_discovered = time.time()
    log(f"Found {len(discovery.files)} HTML files.")
    log("")

    outcomes: List[FileOutcome] = []
    total = len(discovery.files)
    _invoke(callbacks, 'phase', 'rewrite', 0)
    for idx, path in enumerate(discovery.files, 1):
        outcome = process_file(path, cfg, stats, callbacks)
        outcomes.append(outcome)
        if outcome.failed:
            j('file_error', path=path, state=outcome.state, error=outcome.error)
        else:
            j('file_processed', path=path, state=outcome.state, replacements=outcome.replacements,
              backup_path=outcome.backup_path)
        _invoke(callbacks, 'file_done', outcome, idx, total)
        _invoke(callbacks, 'phase', 'rewrite', int(idx * 100 / total))
    if not total:
        _invoke(callbacks, 'phase', 'rewrite', 100)
    t_end = time.time()

    log("")
    for line in format_summary(stats, cfg):
        log(line)
    log("")
    log("Dry run completed. No files were modified." if cfg.dry_run else "Processing complete!")
    timings = {'discover': round(t_discovered - t0, 4), 'rewrite': round(t_end - t_discovered, 4),
               'total': round(t_end - t0, 4)}
    j('summary', success=True, dry_run=cfg.dry_run, timings=timings, **stats.as_dict())
    return RunResult(True, stats, outcomes, list(discovery.errors), timings, run_id)

# ---------------- Config file ----------------
def _load_config_file(path: str) -> dict:
    """Load a JSON or YAML (.yml/.yaml) mapping. Raises StartupError when unusable."""
    if not path or not os.path.exists(path):
        raise StartupError(f"Config file '{path}' not found.", EXIT_CONFIG_ERROR)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.lower().endswith(('.yml', '.yaml')):
                import yaml
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
    except ImportError as e:
        raise StartupError("YAML config requires PyYAML (pip install pyyaml).", EXIT_CONFIG_ERROR) from e
    except (OSError, ValueError) as e:
        raise StartupError(f"Cannot read config file '{path}': {e}", EXIT_CONFIG_ERROR) from e
    except Exception as e:  # yaml.YAMLError
        raise StartupError(f"Invalid config file '{path}': {e}", EXIT_CONFIG_ERROR) from e
    if not isinstance(data, dict):
        raise StartupError(f"Config file '{path}' must contain a mapping.", EXIT_CONFIG_ERROR)
    return data

# ---------------- Verification ----------------
_VERIFICATION_RE = re.compile(r"OK=(\d+) Missing=(\d+) Mismatched=(\d+) Total=(\d+)")
def parse_verification_summary(text: str):
    for line in (text or '').splitlines():
        m = _VERIFICATION_RE.search(line)
        if m:
            ok, missing, mismatched, total = map(int, m.groups())
            return {'ok': ok, 'missing': missing, 'mismatched': mismatched, 'total': total}
    return {'ok': None, 'missing': None, 'mismatched': None, 'total': None}

def run_verification(backup_root: str, base: Optional[str] = None, scan_root: Optional[str] = None, output_cb=None):
    """Run verify_backups.py against ``backup_root`` and return (passed, stats)."""
    empty = {'ok': None, 'missing': None, 'mismatched': None, 'total': None}
    if not backup_root or not os.path.isdir(backup_root):
        return False, empty
    script = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'verify_backups.py')
    cmd = [sys.executable, script, '--backup', backup_root, '--base', base or os.getcwd()]
    if scan_root:
        cmd += ['--root', scan_root]
    try:
        res = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        if output_cb: output_cb(f"[verify] error launching verifier: {e}")
        return False, empty
    stdout = res.stdout or ''
    if stdout and output_cb:
        for line in stdout.splitlines():
            output_cb(line)
    return res.returncode == 0, parse_verification_summary(stdout)

# ---------------- Report ----------------
def write_report(path: str, fmt: str, cfg: RunConfig, res: RunResult, exit_code: int) -> str:
    summary = {
        'root': cfg.root,
        'backup': cfg.backup,
        'dry_run': cfg.dry_run,
        'exit_code': exit_code,
        'run_id': res.run_id,
        'generated_utc': datetime.now(timezone.utc).isoformat(),
        'stats': res.stats.as_dict(),
        'timings': res.timings,
        'files': [
            {'path': o.path, 'state': o.state, 'replacements': o.replacements,
             'backup_path': o.backup_path, 'error': o.error}
            for o in res.outcomes if o.state != STATE_NO_CHANGE
        ],
        'discovery_errors': [{'path': d.path, 'error': d.message} for d in res.discovery_errors],
    }
    if fmt == 'json':
        with open(path, 'w', encoding='utf-8') as rf:
            json.dump(summary, rf, indent=2)
        return path
    def _section(title: str):
        return f"\n## {title}\n"
    lines = ["# Size Suffix Report\n", "\nGenerated: " + summary['generated_utc'] + "\n"]
    lines.append(_section('Overview'))
    lines.append(f"Root: {cfg.root}\nBackup: {cfg.backup or '-'}\nDry Run: {cfg.dry_run}\nExit Code: {exit_code}\n")
    lines.append(_section('Statistics'))
    for k, v in summary['stats'].items():
        lines.append(f"- {k}: {v}\n")
    if summary['files']:
        lines.append(_section('Files'))
        for f in summary['files']:
            extra = f" ({f['error']})" if f['error'] else ''
            lines.append(f"- {f['path']}: {f['state']}, {f['replacements']} replacements{extra}\n")
    if summary['discovery_errors']:
        lines.append(_section('Discovery Errors'))
        for d in summary['discovery_errors']:
            lines.append(f"- {d['path']}: {d['error']}\n")
    with open(path, 'w', encoding='utf-8', errors='backslashreplace') as rf:
        rf.write(''.join(lines))
    return path

# ---------- headless CLI ----------
USAGE_EPILOG = """Example:
  wpsr.py ./exported-wordpress-site --backup ./backups

Searches HTML files for patterns like "-1024x768.jpg" and replaces them with ".jpg"."""

def _build_parser():
    import argparse
    parser = argparse.ArgumentParser(
        prog='wpsr.py',
        description="WordPress Image Size Suffix Remover: strip WordPress-generated image size suffixes from HTML files",
        epilog=USAGE_EPILOG, formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('directory', nargs='?', default=None, help='Root directory of the static export to scan')
    parser.add_argument('--backup', default=None, metavar='PATH', help='Create backups of modified files in the specified directory')
    parser.add_argument('--dry-run', action='store_true', help='Show what would be changed without modifying files')
    parser.add_argument('--config', default=None, help='Optional config file (JSON/YAML)')
    parser.add_argument('--json-logs', action='store_true', help='Emit machine-readable JSON log lines')
    parser.add_argument('--events-file', default=None, help='Append JSON events to this NDJSON file')
    parser.add_argument('--progress', choices=['plain', 'rich'], default='plain', help='Progress rendering mode (rich requires optional dependency)')
    parser.add_argument('--report', choices=['json', 'md'], default=None, help='Generate a wpsr_report.json or wpsr_report.md summary file')
    parser.add_argument('--report-file', default=None, help='Report destination (default: wpsr_report.<format> in the current directory)')
    parser.add_argument('--verify-after', action='store_true', help='Verify backups against rewritten files after the run')
    parser.add_argument('--gui', action='store_true', help='Open the Qt frontend instead (requires PySide6)')
    return parser

def _merge_config(parser, args, data: dict) -> None:
    """Fill args still at their CLI default from ``data``; values must fit the option's type/choices."""
    actions = {a.dest: a for a in parser._actions if hasattr(a, 'dest')}
    for k, v in data.items():
        k = str(k).replace('-', '_')
        action = actions.get(k)
        if k in ('config', 'help') or action is None or v is None:
            continue
        if isinstance(action.default, bool):
            if not isinstance(v, bool):
                raise StartupError(f"Config value for '{k}' must be true or false, got {v!r}.", EXIT_CONFIG_ERROR)
        elif not isinstance(v, str):
            raise StartupError(f"Config value for '{k}' must be a string, got {v!r}.", EXIT_CONFIG_ERROR)
        if action.choices and v not in action.choices:
            raise StartupError(f"Config value for '{k}' must be one of {', '.join(action.choices)}, got {v!r}.", EXIT_CONFIG_ERROR)
        cur = getattr(args, k)
        if cur == action.default or cur in (None, ''):
            setattr(args, k, v)

class CLICallbacks(RunCallbacks):
    def log(self, message: str): print(message)
    def error(self, message: str): print(message, file=sys.stderr)

def _emit_final(args, payload: dict):
    if args.json_logs:
        print(json.dumps(payload))
    if args.events_file:
        try:
            with open(args.events_file, 'a', encoding='utf-8') as ef:
                ef.write(json.dumps(payload) + '\n')
        except OSError:
            pass

def headless_main(argv: list[str]) -> int:
    """Command-line entry: validate arguments, run the remover, print the summary."""
    parser = _build_parser()
    # --help wins over everything else, including otherwise invalid arguments
    if '-h' in argv or '--help' in argv:
        parser.print_help()
        return EXIT_SUCCESS
    args = parser.parse_args(argv)

    # Config merge (values still at their CLI default are taken from the file)
    if args.config:
        try:
            cfg_file = _load_config_file(args.config)
        except StartupError as e:
            print(f"\nError: {e}", file=sys.stderr)
            return e.exit_code
        try:
            _merge_config(parser, args, cfg_file)
        except StartupError as e:
            print(f"\nError: {e}", file=sys.stderr)
            return e.exit_code

    if not args.directory:
        print("\nError: No directory path provided.", file=sys.stderr)
        print(f"\nUsage: {parser.prog} <directory_path> [options]", file=sys.stderr)
        print("\nUse --help or -h for more information.", file=sys.stderr)
        return EXIT_GENERIC_FAILURE

    cfg = RunConfig(
        root=args.directory, backup=args.backup, dry_run=bool(args.dry_run),
        json_logs=bool(args.json_logs), events_file=args.events_file, progress_mode=args.progress,
    )
    try:
        validate_run_config(cfg)
    except StartupError as e:
        print(f"\nError: {e}", file=sys.stderr)
        _emit_final(args, {'event': 'summary_final', 'exit_code': e.exit_code, 'success': False, 'error': str(e)})
        return e.exit_code

    callbacks: RunCallbacks
    rich_context = None
    if cfg.progress_mode == 'rich':
        rc = RichCallbacks()
        if getattr(rc, '_rich_available', False):
            rc.start()
            callbacks = rc
            rich_context = rc
        else:
            print('[progress] rich mode requested but Rich is not installed; falling back to plain output')
            callbacks = CLICallbacks()
    else:
        callbacks = CLICallbacks()
    try:
        res = run_remover(cfg, callbacks)
    finally:
        if rich_context is not None:
            rich_context.stop()

    exit_code = EXIT_SUCCESS if res.success else EXIT_GENERIC_FAILURE
    if args.verify_after:
        if cfg.dry_run or not cfg.backup:
            print('[verify] skipped (requires --backup and a non dry run)')
        else:
            passed, _ = run_verification(cfg.backup, cfg.backup_base, cfg.root, output_cb=print)
            if not passed:
                exit_code = EXIT_VERIFY_FAILED
    if args.report:
        report_path = args.report_file or os.path.join(os.getcwd(), f"wpsr_report.{args.report}")
        try:
            write_report(report_path, args.report, cfg, res, exit_code)
            if args.json_logs:
                print(json.dumps({'event': 'report_generated', 'path': report_path, 'format': args.report}))
            else:
                print(f"[report] generated {report_path}")
        except OSError as e:
            print(f"[report] failed: {e}", file=sys.stderr)
    if args.json_logs or args.events_file:
        _emit_final(args, {'event': 'summary_final', 'exit_code': exit_code, 'success': res.success,
                           'run_id': res.run_id, **res.stats.as_dict()})
    return exit_code

__all__ = [
    '__version__', 'SIZE_SUFFIX_RE', 'MatchRecord', 'RewriteResult', 'remove_size_suffixes', 'count_size_suffixes',
    'format_match_preview', 'DiscoveryError', 'DiscoveryResult', 'find_html_files', 'backup_path_for', 'create_backup',
    'RunConfig', 'RunStats', 'FileOutcome', 'RunResult', 'RunCallbacks', 'RichCallbacks', 'StartupError', 'BackupError',
    'validate_run_config', 'process_file', 'run_remover', 'format_summary', 'parse_verification_summary',
    'run_verification', 'write_report', 'headless_main', '_load_config_file',
    'EXIT_SUCCESS', 'EXIT_GENERIC_FAILURE', 'EXIT_VERIFY_FAILED', 'EXIT_INVALID_ROOT', 'EXIT_INVALID_BACKUP',
    'EXIT_BACKUP_CREATE_FAILED', 'EXIT_CONFIG_ERROR',
]
## End of core helpers.
