from __future__ import annotations

import logging
from typing import Any

from PySide6.QtCore import QThreadPool
from PySide6.QtWidgets import (
    QMainWindow,
    QPushButton,
    QSplitter,
    QStackedWidget,
    QTreeWidget,
    QTreeWidgetItem,
)

from ferret.collectors.filesystem_collector import FilesystemCollector
from ferret.engine.predicates import build_predicate, combine
from ferret.engine.traversal import Scanner
from ferret.gui.pages.filesystem_page import FilesystemPage
from ferret.gui.pages.scan_page import ScanPage
from ferret.gui.workers import ScanWorker, Worker, WorkerJob
from ferret.models.common import CollectorResult
from ferret.models.filesystem import FilesystemStats
from ferret.models.scan import ScanCounters, ScanRequest
from ferret.services.config_service import ConfigService
from ferret.services.report_service import ReportService, scan_status

logger = logging.getLogger(__name__)


def build_scan_request(cfg: dict[str, Any]) -> ScanRequest:
    window = int(cfg.get("recent_minutes") or 60)
    predicate = combine(
        [build_predicate(c, window_minutes=window) for c in cfg["checks"]],
        mode=str(cfg.get("match") or "any"),
    )
    return ScanRequest(
        root=str(cfg.get("root") or "/"),
        predicate=predicate,
        max_depth=cfg.get("max_depth"),
        workers=int(cfg.get("workers") or 1),
        skip_pseudo_filesystems=bool(cfg.get("skip_pseudo_filesystems", True)),
    )


class MainWindow(QMainWindow):
    def __init__(self, config: ConfigService | None = None) -> None:
        super().__init__()
        self.setWindowTitle("Ferret")
        self.resize(1100, 720)

        self._config = config or ConfigService()
        self._reporter = ReportService()
        self._latest_stats: CollectorResult[FilesystemStats] | None = None

        self._thread_pool = QThreadPool.globalInstance()
        self._stats_req_id = 0
        self._active_workers: set[Worker] = set()
        self._scan_worker: ScanWorker | None = None

        self._scan_config: dict[str, object] = {}
        self._stats_config: dict[str, object] = {"scan_dir": ".", "recursive": False, "include_hidden": False}

        self._nav = QTreeWidget()
        self._nav.setHeaderHidden(True)

        self._pages = QStackedWidget()
        self._scan = ScanPage()
        self._stats = FilesystemPage()
        self._pages.addWidget(self._scan)
        self._pages.addWidget(self._stats)

        self._nav_items: dict[str, int] = {
            "Scan": 0,
            "Statistics": 1,
        }
        for title in self._nav_items.keys():
            self._nav.addTopLevelItem(QTreeWidgetItem([title]))
        self._nav.setCurrentItem(self._nav.topLevelItem(0))

        splitter = QSplitter()
        splitter.addWidget(self._nav)
        splitter.addWidget(self._pages)
        splitter.setStretchFactor(0, 0)
        splitter.setStretchFactor(1, 1)
        self.setCentralWidget(splitter)

        self.statusBar().showMessage("Ready")

        export_btn = QPushButton("Export Report")
        export_btn.clicked.connect(self._export_report)  # type: ignore[arg-type]
        self.statusBar().addPermanentWidget(export_btn)

        self._nav.currentItemChanged.connect(self._on_nav_changed)  # type: ignore[arg-type]
        self._scan.startRequested.connect(self._on_scan_start)  # type: ignore[arg-type]
        self._scan.stopRequested.connect(self.stop_scan)  # type: ignore[arg-type]
        self._stats.applyRequested.connect(self._on_stats_apply)  # type: ignore[arg-type]

        self._load_config()

    def _load_config(self) -> None:
        cfg = self._config.load()
        self._scan_config = {
            "recent_minutes": self._config.get(cfg, "scan", "recent_minutes"),
            "workers": self._config.get(cfg, "scan", "workers"),
            "max_depth": self._config.get(cfg, "scan", "max_depth"),
            "skip_pseudo_filesystems": self._config.get(cfg, "scan", "skip_pseudo_filesystems"),
        }
        gui = cfg.get("gui")
        if isinstance(gui, dict):
            if isinstance(gui.get("scan"), dict):
                self._scan_config.update(gui["scan"])
            if isinstance(gui.get("stats"), dict):
                self._stats_config.update(gui["stats"])
        self._scan.load_config(self._scan_config)
        self._stats.load_config(self._stats_config)

    def _save_config(self) -> None:
        cfg = self._config.load()
        cfg["gui"] = {
            "scan": self._scan_config,
            "stats": self._stats_config,
        }
        try:
            self._config.save(cfg)
        except OSError as e:
            logger.warning("cannot save config: %s", e)
            self._on_worker_error(f"cannot save config: {e}")

    def _on_nav_changed(self, current: QTreeWidgetItem | None, _prev: QTreeWidgetItem | None) -> None:
        if current is None:
            return
        title = current.text(0)
        idx = self._nav_items.get(title)
        if idx is not None:
            self._pages.setCurrentIndex(idx)

    def _on_scan_start(self, cfg: dict) -> None:
        if self._scan_worker is not None:
            return
        self._scan_config.update(cfg)
        self._save_config()

        w = ScanWorker(Scanner(build_scan_request(self._scan_config)))
        self._scan_worker = w
        w.signals.batch.connect(self._scan.append_matches)  # type: ignore[arg-type]
        w.signals.result.connect(lambda c, _w=w: self._on_scan_result(_w, c))  # type: ignore[arg-type]
        w.signals.error.connect(lambda m, _w=w: self._on_scan_error(m))  # type: ignore[arg-type]
        w.signals.finished.connect(lambda _w=w: self._on_scan_finished(_w))  # type: ignore[arg-type]
        self._scan.set_running(True)
        self.statusBar().showMessage(f"Scanning {self._scan_config.get('root')} ...")
        self._thread_pool.start(w)

    def stop_scan(self) -> None:
        if self._scan_worker is not None:
            self._scan_worker.stop()
            self.statusBar().showMessage("Stopping scan ...")

    def _on_scan_result(self, w: ScanWorker, counters: Any) -> None:
        if not isinstance(counters, ScanCounters):
            return
        status = scan_status(counters, interrupted=w.cancel.is_set())
        self._scan.set_summary(status, counters)
        self.statusBar().showMessage(
            f"Scan {status}: {counters.matched} matched, {counters.visited} visited"
        )

    def _on_scan_error(self, msg: str) -> None:
        self._scan.set_error(msg)
        self._on_worker_error(msg)

    def _on_scan_finished(self, w: ScanWorker) -> None:
        if self._scan_worker is w:
            self._scan_worker = None
        self._scan.set_running(False)

    def _on_stats_apply(self, cfg: dict) -> None:
        self._stats_config.update(cfg)
        self._save_config()
        self.statusBar().showMessage(
            f"Statistics config applied: dir={self._stats_config.get('scan_dir')} recursive={self._stats_config.get('recursive')}"
        )
        self.refresh_stats()

    def refresh_stats(self) -> None:
        self._stats_req_id += 1
        req_id = self._stats_req_id
        collector = FilesystemCollector(
            scan_dir=str(self._stats_config.get("scan_dir") or "."),
            recursive=bool(self._stats_config.get("recursive")),
            include_hidden=bool(self._stats_config.get("include_hidden")),
        )

        def job() -> CollectorResult[FilesystemStats]:
            return collector.collect()

        w = Worker(WorkerJob(fn=job))
        self._active_workers.add(w)
        w.signals.result.connect(lambda r, _w=w: self._on_stats_result(req_id, r))  # type: ignore[arg-type]
        w.signals.error.connect(lambda m, _w=w: self._on_worker_error(m))  # type: ignore[arg-type]
        w.signals.finished.connect(lambda _w=w: self._active_workers.discard(_w))  # type: ignore[arg-type]
        self._thread_pool.start(w)

    def _on_stats_result(self, req_id: int, res: Any) -> None:
        if req_id != self._stats_req_id:
            return
        if not isinstance(res, CollectorResult):
            return
        try:
            self._latest_stats = res
            self._stats.set_data(res)
            self.statusBar().showMessage(
                f"Updated: {res.ts.strftime('%F %T')} | Status: {res.status} | Warnings: {res.warning_count}"
            )
        except Exception as e:  # noqa: BLE001
            self._on_worker_error(str(e))

    def _export_report(self) -> None:
        if self._latest_stats is None:
            self.statusBar().showMessage("Nothing to export yet: refresh the statistics page first")
            return
        try:
            bundle = self._reporter.build_stats_report(self._latest_stats)
            out = self._reporter.default_report_path()
            written = self._reporter.write_html(out, bundle.html)
            self.statusBar().showMessage(f"Report exported: {written}")
        except Exception as e:  # noqa: BLE001
            self._on_worker_error(str(e))

    def closeEvent(self, event: Any) -> None:  # noqa: N802
        self.stop_scan()
        self._thread_pool.waitForDone(3000)
        super().closeEvent(event)

    def _on_worker_error(self, msg: str) -> None:
        self.statusBar().showMessage(f"Error: {msg}")
