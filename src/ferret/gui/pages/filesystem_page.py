from __future__ import annotations

from PySide6.QtCore import Qt, Signal
from PySide6.QtWidgets import (
    QAbstractItemView,
    QCheckBox,
    QGridLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QProgressBar,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from ferret.formatting import human_bytes
from ferret.models.common import CollectorResult
from ferret.models.filesystem import ExtensionStat, FilesystemStats, LargeFile, SizeBucket


class FilesystemPage(QWidget):
    applyRequested = Signal(dict)

    def __init__(self) -> None:
        super().__init__()

        self._status = QLabel("-")
        self._status.setTextInteractionFlags(Qt.TextSelectableByMouse)
        self._totals = QLabel("-")
        self._mount = QLabel("-")
        self._notes = QLabel("")
        self._notes.setWordWrap(True)
        self._disk = QProgressBar()
        self._disk.setRange(0, 100)

        self._scan_dir = QLineEdit(".")
        self._recursive = QCheckBox("Recursive")
        self._hidden = QCheckBox("Include hidden")

        apply_btn = QPushButton("Apply & Refresh")
        apply_btn.clicked.connect(self._on_apply_clicked)  # type: ignore[arg-type]

        cfg = QGroupBox("Statistics Config")
        cfg_grid = QGridLayout(cfg)
        cfg_grid.addWidget(QLabel("Directory"), 0, 0)
        cfg_grid.addWidget(self._scan_dir, 0, 1)
        cfg_grid.addWidget(self._recursive, 1, 1)
        cfg_grid.addWidget(self._hidden, 2, 1)

        cfg_row = QHBoxLayout()
        cfg_row.addWidget(cfg)
        cfg_row.addStretch(1)
        cfg_row.addWidget(apply_btn)

        summary = QGroupBox("Directory Summary")
        grid = QGridLayout(summary)
        grid.addWidget(QLabel("Status"), 0, 0)
        grid.addWidget(self._status, 0, 1)
        grid.addWidget(QLabel("Totals"), 1, 0)
        grid.addWidget(self._totals, 1, 1)
        grid.addWidget(QLabel("Mount"), 2, 0)
        grid.addWidget(self._mount, 2, 1)
        grid.addWidget(QLabel("Disk Used"), 3, 0)
        grid.addWidget(self._disk, 3, 1)
        grid.addWidget(QLabel("Notes"), 4, 0)
        grid.addWidget(self._notes, 4, 1)

        self._buckets = self._make_table("Size Distribution", ["RANGE", "FILES"], 2)
        self._types = self._make_table("Top File Types", ["EXTENSION", "COUNT", "TOTAL SIZE"], 3)
        self._large = self._make_table("Largest Files", ["SIZE", "PATH"], 2)

        tables = QHBoxLayout()
        tables.addWidget(self._buckets[0])
        tables.addWidget(self._types[0])

        layout = QVBoxLayout(self)
        layout.addLayout(cfg_row)
        layout.addWidget(summary)
        layout.addLayout(tables)
        layout.addWidget(self._large[0])
        layout.addStretch(1)

    def config(self) -> dict:
        return {
            "scan_dir": self._scan_dir.text().strip() or ".",
            "recursive": self._recursive.isChecked(),
            "include_hidden": self._hidden.isChecked(),
        }

    def load_config(self, cfg: dict) -> None:
        self._scan_dir.setText(str(cfg.get("scan_dir") or "."))
        self._recursive.setChecked(bool(cfg.get("recursive")))
        self._hidden.setChecked(bool(cfg.get("include_hidden")))

    def _on_apply_clicked(self) -> None:
        self.applyRequested.emit(self.config())

    def _make_table(self, title: str, headers: list[str], cols: int) -> tuple[QGroupBox, QTableWidget]:
        gb = QGroupBox(title)
        t = QTableWidget(0, cols)
        t.setHorizontalHeaderLabels(headers)
        t.setEditTriggers(QAbstractItemView.NoEditTriggers)
        t.setSelectionBehavior(QAbstractItemView.SelectRows)
        t.setAlternatingRowColors(True)
        t.horizontalHeader().setStretchLastSection(True)
        l = QVBoxLayout(gb)
        l.addWidget(t)
        return gb, t

    def set_data(self, result: CollectorResult[FilesystemStats]) -> None:
        d = result.data
        self._status.setText(str(result.status))
        self._totals.setText(f"{d.total_files} files, {d.total_dirs} directories, {human_bytes(d.total_bytes)}")
        if d.mount is not None:
            m = d.mount
            self._mount.setText(f"{m.mountpoint} ({m.fstype}) {m.used_gb:.2f}/{m.total_gb:.2f} GB")
            self._disk.setValue(int(m.used_percent))
        else:
            self._mount.setText("-")
            self._disk.setValue(0)
        self._notes.setText("\n".join([*result.warnings, *d.notes]))

        self._fill_buckets(self._buckets[1], d.size_buckets)
        self._fill_types(self._types[1], d.extensions)
        self._fill_large(self._large[1], d.large_files)

    def _fill_buckets(self, t: QTableWidget, rows: list[SizeBucket]) -> None:
        t.setRowCount(len(rows))
        for r, b in enumerate(rows):
            t.setItem(r, 0, QTableWidgetItem(b.label))
            t.setItem(r, 1, QTableWidgetItem(str(b.count)))
        t.resizeColumnsToContents()

    def _fill_types(self, t: QTableWidget, rows: list[ExtensionStat]) -> None:
        t.setRowCount(len(rows))
        for r, e in enumerate(rows):
            t.setItem(r, 0, QTableWidgetItem(e.extension))
            t.setItem(r, 1, QTableWidgetItem(str(e.count)))
            t.setItem(r, 2, QTableWidgetItem(human_bytes(e.size_bytes)))
        t.resizeColumnsToContents()

    def _fill_large(self, t: QTableWidget, rows: list[LargeFile]) -> None:
        t.setRowCount(len(rows))
        for r, f in enumerate(rows):
            t.setItem(r, 0, QTableWidgetItem(human_bytes(f.size_bytes)))
            t.setItem(r, 1, QTableWidgetItem(f.path))
        t.resizeColumnsToContents()
