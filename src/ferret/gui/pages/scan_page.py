from __future__ import annotations

from PySide6.QtCore import Qt, Signal
from PySide6.QtWidgets import (
    QAbstractItemView,
    QCheckBox,
    QComboBox,
    QGridLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QSpinBox,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from ferret.engine.predicates import CHECKS
from ferret.models.scan import Match, ScanCounters


class ScanPage(QWidget):
    startRequested = Signal(dict)
    stopRequested = Signal()

    def __init__(self) -> None:
        super().__init__()

        self._status = QLabel("-")
        self._status.setTextInteractionFlags(Qt.TextSelectableByMouse)
        self._counts = QLabel("-")
        self._notes = QLabel("")
        self._notes.setWordWrap(True)

        self._root = QLineEdit("/")
        self._checks: dict[str, QCheckBox] = {c: QCheckBox(c) for c in CHECKS}
        self._checks["suid"].setChecked(True)
        self._match = QComboBox()
        self._match.addItems(["any", "all"])
        self._window = QSpinBox()
        self._window.setRange(1, 525600)
        self._window.setValue(60)
        self._max_depth = QSpinBox()
        self._max_depth.setRange(0, 4096)
        self._max_depth.setSpecialValueText("unlimited")
        self._workers = QSpinBox()
        self._workers.setRange(1, 64)
        self._pseudo = QCheckBox("Descend into pseudo filesystems")

        self._start_btn = QPushButton("Start")
        self._start_btn.clicked.connect(self._on_start_clicked)  # type: ignore[arg-type]
        self._stop_btn = QPushButton("Stop")
        self._stop_btn.setEnabled(False)
        self._stop_btn.clicked.connect(self.stopRequested.emit)  # type: ignore[arg-type]

        checks_row = QHBoxLayout()
        for box in self._checks.values():
            checks_row.addWidget(box)
        checks_row.addStretch(1)

        cfg = QGroupBox("Scan Config")
        cfg_grid = QGridLayout(cfg)
        cfg_grid.addWidget(QLabel("Root"), 0, 0)
        cfg_grid.addWidget(self._root, 0, 1)
        cfg_grid.addWidget(QLabel("Checks"), 1, 0)
        cfg_grid.addLayout(checks_row, 1, 1)
        cfg_grid.addWidget(QLabel("Match"), 2, 0)
        cfg_grid.addWidget(self._match, 2, 1)
        cfg_grid.addWidget(QLabel("Recent (min)"), 3, 0)
        cfg_grid.addWidget(self._window, 3, 1)
        cfg_grid.addWidget(QLabel("Max Depth"), 4, 0)
        cfg_grid.addWidget(self._max_depth, 4, 1)
        cfg_grid.addWidget(QLabel("Workers"), 5, 0)
        cfg_grid.addWidget(self._workers, 5, 1)
        cfg_grid.addWidget(self._pseudo, 6, 1)

        buttons = QVBoxLayout()
        buttons.addWidget(self._start_btn)
        buttons.addWidget(self._stop_btn)
        buttons.addStretch(1)

        cfg_row = QHBoxLayout()
        cfg_row.addWidget(cfg)
        cfg_row.addStretch(1)
        cfg_row.addLayout(buttons)

        summary = QGroupBox("Scan Summary")
        grid = QGridLayout(summary)
        grid.addWidget(QLabel("Status"), 0, 0)
        grid.addWidget(self._status, 0, 1)
        grid.addWidget(QLabel("Counts"), 1, 0)
        grid.addWidget(self._counts, 1, 1)
        grid.addWidget(QLabel("Notes"), 2, 0)
        grid.addWidget(self._notes, 2, 1)

        self._results = QTableWidget(0, 3)
        self._results.setHorizontalHeaderLabels(["PATH", "OUTCOME", "DETAIL"])
        self._results.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self._results.setSelectionBehavior(QAbstractItemView.SelectRows)
        self._results.setAlternatingRowColors(True)
        self._results.verticalHeader().setVisible(False)
        self._results.horizontalHeader().setStretchLastSection(True)

        results_box = QGroupBox("Matches")
        results_l = QVBoxLayout(results_box)
        results_l.addWidget(self._results)

        layout = QVBoxLayout(self)
        layout.addLayout(cfg_row)
        layout.addWidget(summary)
        layout.addWidget(results_box, 1)

    def config(self) -> dict:
        return {
            "root": self._root.text().strip() or "/",
            "checks": [c for c, box in self._checks.items() if box.isChecked()],
            "match": self._match.currentText(),
            "recent_minutes": int(self._window.value()),
            "max_depth": int(self._max_depth.value()) or None,
            "workers": int(self._workers.value()),
            "skip_pseudo_filesystems": not self._pseudo.isChecked(),
        }

    def load_config(self, cfg: dict) -> None:
        self._root.setText(str(cfg.get("root") or "/"))
        checks = cfg.get("checks")
        if isinstance(checks, list) and checks:
            for c, box in self._checks.items():
                box.setChecked(c in checks)
        if cfg.get("match") in ("any", "all"):
            self._match.setCurrentText(str(cfg["match"]))
        self._window.setValue(int(cfg.get("recent_minutes") or 60))
        self._max_depth.setValue(int(cfg.get("max_depth") or 0))
        self._workers.setValue(int(cfg.get("workers") or 1))
        self._pseudo.setChecked(not cfg.get("skip_pseudo_filesystems", True))

    def _on_start_clicked(self) -> None:
        cfg = self.config()
        if not cfg["checks"]:
            self._notes.setText("Select at least one check.")
            return
        self.startRequested.emit(cfg)

    def set_running(self, running: bool) -> None:
        self._start_btn.setEnabled(not running)
        self._stop_btn.setEnabled(running)
        if running:
            self._results.setRowCount(0)
            self._status.setText("RUNNING")
            self._counts.setText("-")
            self._notes.setText("")

    def append_matches(self, matches: list[Match]) -> None:
        t = self._results
        start = t.rowCount()
        t.setRowCount(start + len(matches))
        for i, m in enumerate(matches):
            r = start + i
            t.setItem(r, 0, QTableWidgetItem(m.entry.path))
            t.setItem(r, 1, QTableWidgetItem("match" if m.outcome.is_match else "unreadable"))
            t.setItem(r, 2, QTableWidgetItem(m.outcome.detail or ""))
        self._counts.setText(f"{t.rowCount()} rows")

    def set_summary(self, status: str, c: ScanCounters) -> None:
        self._results.resizeColumnsToContents()
        self._status.setText(status)
        self._counts.setText(
            f"visited={c.visited} matched={c.matched} unreadable={c.indeterminate} "
            f"skipped_dirs={c.skipped_dirs} unopened_dirs={c.unreadable_dirs} pruned={c.pruned}"
        )
        self._notes.setText("\n".join(c.warnings) if c.warnings else "")

    def set_error(self, msg: str) -> None:
        self._status.setText("ERROR")
        self._notes.setText(msg)
