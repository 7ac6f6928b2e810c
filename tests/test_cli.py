import os, sys, tempfile, shutil, subprocess, json, importlib.util, pytest

BASE = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
SCRIPT = os.path.join(BASE, 'wpsr.py')
PY = sys.executable

def run(args, cwd=None):
    env = os.environ.copy()
    env['PYTHONPATH'] = BASE + os.pathsep + env.get('PYTHONPATH', '')
    return subprocess.run([PY, SCRIPT] + args, capture_output=True, text=True, cwd=cwd, env=env)

@pytest.fixture
def workdir():
    tmp = tempfile.mkdtemp(prefix='wpsr_cli_')
    site = os.path.join(tmp, 'site')
    os.makedirs(os.path.join(site, 'blog'))
    with open(os.path.join(site, 'index.html'), 'w', encoding='utf-8') as f:
        f.write('<img src="uploads/photo-1024x768.jpg"><img src="uploads/icon-32x32.png">')
    with open(os.path.join(site, 'blog', 'post.html'), 'w', encoding='utf-8') as f:
        f.write('<a href="full-300x300.webp">x</a>')
    with open(os.path.join(site, 'blog', 'empty.html'), 'w', encoding='utf-8') as f:
        f.write('<p>hello</p>')
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)

def read(path):
    with open(path, 'r', encoding='utf-8') as f: return f.read()

def test_help_exits_zero_even_with_bad_args():
    for args in (['--help'], ['-h'], ['/does/not/exist', '-h'], ['--backup', '-h'], ['--bogus', '--help']):
        r = run(args)
        assert r.returncode == 0, (args, r.stderr)
        assert '--dry-run' in r.stdout and '--backup' in r.stdout

def test_missing_directory_argument():
    r = run([])
    assert r.returncode == 1
    assert 'No directory path provided' in r.stderr

def test_nonexistent_and_non_directory_root(workdir):
    r = run([os.path.join(workdir, 'missing')])
    assert r.returncode == 10
    r = run([os.path.join(workdir, 'site', 'index.html')])
    assert r.returncode == 10
    assert 'is not a directory' in r.stderr

def test_backup_path_is_file(workdir):
    r = run(['site', '--backup', os.path.join('site', 'index.html')], cwd=workdir)
    assert r.returncode == 11
    assert read(os.path.join(workdir, 'site', 'index.html')).count('-1024x768') == 1

def test_backup_option_requires_value(workdir):
    r = run(['site', '--backup'], cwd=workdir)
    assert r.returncode == 2

def test_full_run_with_backup(workdir):
    r = run(['site', '--backup', 'bak'], cwd=workdir)
    assert r.returncode == 0, r.stderr
    assert read(os.path.join(workdir, 'site', 'index.html')) == '<img src="uploads/photo.jpg"><img src="uploads/icon.png">'
    assert read(os.path.join(workdir, 'bak', 'site', 'index.html')).count('-1024x768') == 1
    assert read(os.path.join(workdir, 'bak', 'site', 'blog', 'post.html')) == '<a href="full-300x300.webp">x</a>'
    assert not os.path.exists(os.path.join(workdir, 'bak', 'site', 'blog', 'empty.html'))
    out = r.stdout
    assert 'Found 3 HTML files.' in out
    assert '  Total files scanned: 3' in out
    assert '  Files with WordPress size suffixes: 2' in out
    assert '  Total suffixes found: 3' in out
    assert '  Backup files created: 2' in out
    assert '  Errors encountered: 0' in out
    assert '  No changes needed' in out
    assert 'Processing complete!' in out

def test_dry_run_reports_and_leaves_tree(workdir):
    before = read(os.path.join(workdir, 'site', 'index.html'))
    r = run(['site', '--dry-run', '--backup', 'bak'], cwd=workdir)
    assert r.returncode == 0, r.stderr
    assert 'Found 2 image size suffixes to remove:' in r.stdout
    assert 'Dry run: File would be updated with 2 replacements' in r.stdout
    assert '1. -1024x768.jpg -> .jpg' in r.stdout
    assert 'Backup files created' not in r.stdout
    assert read(os.path.join(workdir, 'site', 'index.html')) == before
    assert not os.path.exists(os.path.join(workdir, 'bak'))

@pytest.mark.skipif(not hasattr(os, 'geteuid') or os.geteuid() == 0, reason='permission bits not enforced for root')
def test_unreadable_file_counted_exit_zero(workdir):
    bad = os.path.join(workdir, 'site', 'blog', 'post.html')
    os.chmod(bad, 0)
    try:
        r = run(['site'], cwd=workdir)
    finally:
        os.chmod(bad, 0o644)
    assert r.returncode == 0
    assert '  Errors encountered: 1' in r.stdout
    assert 'post.html' in r.stderr
    assert read(os.path.join(workdir, 'site', 'index.html')).count('-') == 0

def test_json_logs_and_summary_final(workdir):
    events = os.path.join(workdir, 'events.ndjson')
    r = run(['site', '--json-logs', '--events-file', events], cwd=workdir)
    assert r.returncode == 0
    parsed = [json.loads(l) for l in r.stdout.splitlines() if l.strip().startswith('{')]
    assert any(o.get('event') == 'summary_final' and o.get('exit_code') == 0 for o in parsed)
    with open(events, 'r', encoding='utf-8') as f:
        rows = [json.loads(l) for l in f.read().splitlines() if l.strip()]
    assert rows[-1]['event'] == 'summary_final'
    assert any(o['event'] == 'summary' and o['total_replacements'] == 3 for o in rows)

def test_config_file_merge_json(workdir):
    cfg_path = os.path.join(workdir, 'conf.json')
    with open(cfg_path, 'w', encoding='utf-8') as f:
        json.dump({'directory': 'site', 'dry-run': True}, f)
    r = run(['--config', cfg_path], cwd=workdir)
    assert r.returncode == 0, r.stderr
    assert 'Dry run completed. No files were modified.' in r.stdout
    assert read(os.path.join(workdir, 'site', 'index.html')).count('-1024x768') == 1

def test_config_file_merge_yaml(workdir):
    pytest.importorskip('yaml')
    cfg_path = os.path.join(workdir, 'conf.yml')
    with open(cfg_path, 'w', encoding='utf-8') as f:
        f.write('directory: site\nbackup: yaml_bak\n')
    r = run(['--config', cfg_path], cwd=workdir)
    assert r.returncode == 0, r.stderr
    assert os.path.isfile(os.path.join(workdir, 'yaml_bak', 'site', 'index.html'))

def test_cli_flags_win_over_config(workdir):
    cfg_path = os.path.join(workdir, 'conf.json')
    with open(cfg_path, 'w', encoding='utf-8') as f:
        json.dump({'directory': 'missing-dir'}, f)
    r = run(['site', '--dry-run', '--config', cfg_path], cwd=workdir)
    assert r.returncode == 0, r.stderr

def test_bad_config_file(workdir):
    cfg_path = os.path.join(workdir, 'conf.json')
    with open(cfg_path, 'w', encoding='utf-8') as f: f.write('{not json')
    r = run(['site', '--config', cfg_path], cwd=workdir)
    assert r.returncode == 16
    r = run(['site', '--config', os.path.join(workdir, 'absent.json')], cwd=workdir)
    assert r.returncode == 16

def test_mistyped_config_value_rejected(workdir):
    cfg_path = os.path.join(workdir, 'conf.json')
    for bad in ({'directory': 'site', 'dry_run': 'false'}, {'directory': 'site', 'progress': 'fancy'}):
        with open(cfg_path, 'w', encoding='utf-8') as f:
            json.dump(bad, f)
        r = run(['--config', cfg_path], cwd=workdir)
        assert r.returncode == 16, bad
        assert read(os.path.join(workdir, 'site', 'index.html')).count('-1024x768') == 1

def test_report_json_and_md(workdir):
    r = run(['site', '--dry-run', '--report', 'json'], cwd=workdir)
    assert r.returncode == 0
    with open(os.path.join(workdir, 'wpsr_report.json'), 'r', encoding='utf-8') as f:
        data = json.load(f)
    assert data['exit_code'] == 0 and data['dry_run'] is True
    assert data['stats']['total_replacements'] == 3
    assert {os.path.basename(x['path']) for x in data['files']} == {'index.html', 'post.html'}
    md_path = os.path.join(workdir, 'out.md')
    r = run(['site', '--report', 'md', '--report-file', md_path], cwd=workdir)
    assert r.returncode == 0
    text = read(md_path)
    assert '# Size Suffix Report' in text and 'Overview' in text and 'Exit Code: 0' in text

def test_verify_after(workdir):
    r = run(['site', '--backup', 'bak', '--verify-after'], cwd=workdir)
    assert r.returncode == 0, r.stdout + r.stderr
    assert 'OK=2 Missing=0 Mismatched=0 Total=2' in r.stdout

def test_rich_progress_mode_runs(workdir):
    pytest.importorskip('rich')
    r = run(['site', '--progress', 'rich'], cwd=workdir)
    assert r.returncode == 0, r.stderr
    assert 'Total suffixes found: 3' in r.stdout

@pytest.mark.skipif(importlib.util.find_spec('PySide6') is not None, reason='PySide6 installed; GUI would open')
def test_gui_flag_without_pyside6():
    r = run(['--gui'])
    assert r.returncode == 1
    assert 'GUI components not installed' in r.stdout
