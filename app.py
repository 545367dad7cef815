import logging
import sys
from pathlib import Path

from PySide6.QtGui import QIcon
from PySide6.QtWidgets import QApplication

from core.editor import Editor
from core.state import EditorConfig
from ui.main_window import MainWindow


def _asset_path(*parts: str) -> Path:
    # PyInstaller onefile extracts bundled files under sys._MEIPASS.
    if getattr(sys, "frozen", False):
        return Path(getattr(sys, "_MEIPASS")) / Path(*parts)
    return Path(__file__).resolve().parent / Path(*parts)


def main() -> int:
    logging.basicConfig(level=logging.INFO)

    app = QApplication(sys.argv)
    app.setApplicationName("PhotonX")
    app.setOrganizationName("PhotonX")

    logo_path = _asset_path("assets", "Logo.png")
    if logo_path.exists():
        app.setWindowIcon(QIcon(str(logo_path)))

    editor = Editor(EditorConfig.from_env())
    w = MainWindow(editor, logo_path=logo_path)
    w.show()
    if len(sys.argv) > 1:
        editor.open_image(sys.argv[1])
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
