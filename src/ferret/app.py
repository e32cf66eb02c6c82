import faulthandler
import sys

from PySide6.QtWidgets import QApplication

from ferret.cli import setup_logging
from ferret.gui.main_window import MainWindow
from ferret.services.config_service import ConfigService


def run() -> None:
    faulthandler.enable()
    config = ConfigService()
    cfg = config.load()
    setup_logging(config.get(cfg, "logging", "level"), config.get(cfg, "logging", "file"))

    app = QApplication(sys.argv)
    app.setApplicationName("Ferret")

    w = MainWindow(config)
    w.show()

    raise SystemExit(app.exec())
