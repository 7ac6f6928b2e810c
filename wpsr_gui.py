"""Qt GUI frontend for the WordPress Size Suffix Remover.

Thin layer over wpsr_core.run_remover: folder pickers, dry-run toggle, console
and progress bar. The run happens on a worker QThread; core callbacks are
bridged to the widgets through Qt signals.
"""
from __future__ import annotations

import os, sys
from PySide6.QtWidgets import (
    QApplication, QWidget, QVBoxLayout, QHBoxLayout, QGridLayout, QLabel, QLineEdit, QPushButton,
    QFileDialog, QTextEdit, QCheckBox, QMessageBox, QProgressBar, QGroupBox
)
from PySide6.QtCore import QThread, Signal

from wpsr_core import (
    RunConfig, RunResult, RunCallbacks, FileOutcome, StartupError, run_remover, validate_run_config
)

class _GuiCallbacks(RunCallbacks):
    def __init__(self, owner: 'SuffixRemoverGUI'): self._owner=owner
    def log(self, message: str): self._owner.sig_log.emit(message)
    def error(self, message: str): self._owner.sig_log.emit(message)
    def phase(self, phase: str, pct: int): self._owner.sig_phase.emit(phase, pct)
    def file_done(self, outcome: FileOutcome, index: int, total: int): self._owner.sig_file.emit(index, total)

class _RunWorker(QThread):
    finished_run = Signal(object)
    def __init__(self, cfg: RunConfig, cb: _GuiCallbacks):
        super().__init__(); self.cfg=cfg; self.cb=cb
    def run(self):
        res=run_remover(self.cfg,self.cb); self.finished_run.emit(res)

class SuffixRemoverGUI(QWidget):
    sig_log=Signal(str); sig_phase=Signal(str,int); sig_file=Signal(int,int)

    def __init__(self, directory: str | None = None):
        super().__init__()
        self.setWindowTitle('WordPress Image Size Suffix Remover')
        self.resize(760, 520)
        self.worker: _RunWorker | None = None
        self.last_result: RunResult | None = None

        root=QVBoxLayout(self)
        box=QGroupBox('Run'); grid=QGridLayout(box)
        self.dir_in=QLineEdit(directory or ''); self.dir_in.setPlaceholderText('Exported site folder')
        btn_dir=QPushButton('Browse…'); btn_dir.clicked.connect(lambda: self._browse(self.dir_in, 'Select site folder'))
        self.backup_in=QLineEdit(); self.backup_in.setPlaceholderText('Optional backup folder')
        btn_bak=QPushButton('Browse…'); btn_bak.clicked.connect(lambda: self._browse(self.backup_in, 'Select backup folder'))
        self.chk_dry=QCheckBox('Dry run (report only, do not modify files)')
        grid.addWidget(QLabel('Directory:'),0,0); grid.addWidget(self.dir_in,0,1); grid.addWidget(btn_dir,0,2)
        grid.addWidget(QLabel('Backup:'),1,0); grid.addWidget(self.backup_in,1,1); grid.addWidget(btn_bak,1,2)
        grid.addWidget(self.chk_dry,2,1)
        root.addWidget(box)

        row=QHBoxLayout()
        self.btn_run=QPushButton('Remove Size Suffixes'); self.btn_run.clicked.connect(self.start_run)
        self.prog=QProgressBar(); self.prog.setRange(0,100); self.prog.setValue(0)
        row.addWidget(self.btn_run); row.addWidget(self.prog,1)
        root.addLayout(row)

        self.console=QTextEdit(); self.console.setReadOnly(True)
        root.addWidget(self.console,1)

        self.sig_log.connect(self._append_log)
        self.sig_phase.connect(self._on_phase)
        self.sig_file.connect(self._on_file)

    def _browse(self, target: QLineEdit, title: str):
        path=QFileDialog.getExistingDirectory(self, title, target.text() or os.getcwd())
        if path: target.setText(path)

    def _append_log(self, message: str): self.console.append(message)

    def _on_phase(self, phase: str, pct: int):
        if phase == 'rewrite': self.prog.setValue(max(0,min(100,pct)))

    def _on_file(self, index: int, total: int):
        if total: self.prog.setValue(int(index*100/total))

    def _build_config(self) -> RunConfig:
        return RunConfig(
            root=self.dir_in.text().strip(),
            backup=self.backup_in.text().strip() or None,
            dry_run=self.chk_dry.isChecked(),
        )

    def start_run(self):
        if self.worker is not None and self.worker.isRunning():
            return
        cfg=self._build_config()
        try:
            validate_run_config(cfg)
        except StartupError as e:
            QMessageBox.warning(self, 'Cannot start', str(e))
            self._append_log(f"[error] {e}")
            return
        self.console.clear(); self.prog.setValue(0); self.btn_run.setEnabled(False)
        self.worker=_RunWorker(cfg,_GuiCallbacks(self))
        self.worker.finished_run.connect(self._on_finished)
        self.worker.start()

    def _on_finished(self, res: RunResult):
        self.last_result=res
        self.btn_run.setEnabled(True)
        self.prog.setValue(100)

    def closeEvent(self, event):
        if self.worker is not None and self.worker.isRunning():
            self.worker.wait(5000)
        super().closeEvent(event)


def launch(directory: str | None = None):  # pragma: no cover - interactive
    app=QApplication.instance() or QApplication(sys.argv)
    w=SuffixRemoverGUI(directory); w.show()
    app.exec()
