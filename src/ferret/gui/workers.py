from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable

from PySide6.QtCore import QObject, QRunnable, Signal, Slot

from ferret.engine.traversal import Scanner
from ferret.models.scan import Match

BATCH_SIZE = 200


class WorkerSignals(QObject):
    result = Signal(object)
    error = Signal(str)
    finished = Signal()


class ScanSignals(WorkerSignals):
    batch = Signal(object)


@dataclass(frozen=True)
class WorkerJob:
    fn: Callable[[], Any]


class Worker(QRunnable):
    def __init__(self, job: WorkerJob) -> None:
        super().__init__()
        self.job = job
        self.signals = WorkerSignals()
        self.setAutoDelete(False)

    @Slot()
    def run(self) -> None:
        try:
            res = self.job.fn()
            self.signals.result.emit(res)
        except Exception as e:  # noqa: BLE001
            self.signals.error.emit(str(e))
        finally:
            self.signals.finished.emit()


class ScanWorker(QRunnable):
    """Drains a scan off the GUI thread, emitting matches in batches.

    ``result`` carries the final ``ScanCounters`` snapshot. ``stop()`` may be
    called from any thread.
    """

    def __init__(self, scanner: Scanner, batch_size: int = BATCH_SIZE) -> None:
        super().__init__()
        self.scanner = scanner
        self.batch_size = batch_size
        self.signals = ScanSignals()
        self.setAutoDelete(False)

    @property
    def cancel(self) -> threading.Event:
        return self.scanner.cancel

    def stop(self) -> None:
        self.scanner.cancel.set()

    @Slot()
    def run(self) -> None:
        try:
            result = self.scanner.scan()
            pending: list[Match] = []
            try:
                for m in result:
                    pending.append(m)
                    if len(pending) >= self.batch_size:
                        self.signals.batch.emit(pending)
                        pending = []
            except BaseException:
                result.close()
                raise
            if pending:
                self.signals.batch.emit(pending)
            self.signals.result.emit(result.counters.snapshot())
        except Exception as e:  # noqa: BLE001
            self.signals.error.emit(str(e))
        finally:
            self.signals.finished.emit()
