# Functions for surfacing session notices and GUI errors

from loguru import logger
from PyQt6.QtCore import Qt
from PyQt6.QtWidgets import QMessageBox, QStatusBar, QWidget

from hallscope.types import SEVERITY, Notice

STATUS_TIMEOUT_MS = 5000


def _message_box(icon, title, message, parent=None):
    box = QMessageBox(parent)
    box.setIcon(icon)
    box.setText(title)
    box.setInformativeText(message)
    box.setWindowTitle(title)
    return box


def show_critical_error(error_message, parent=None):
    """Show a modal error message box with the given error message"""
    _message_box(QMessageBox.Icon.Critical, "Error", error_message, parent).exec()


def show_warning(error_message, parent=None):
    """Show a modal warning message box with the given message"""
    _message_box(QMessageBox.Icon.Warning, "Warning", error_message, parent).exec()


def show_info(error_message, parent=None):
    _message_box(QMessageBox.Icon.Information, "Information", error_message, parent).exec()


class QtNotifier:
    """Notifier for the main window.

    Every notice goes to the status bar. Errors also open a (non-blocking)
    message box, so a failed command cannot go unnoticed.
    """

    def __init__(self, parent: QWidget, status_bar: QStatusBar):
        self._parent = parent
        self._status_bar = status_bar

    def notify(self, notice: Notice) -> None:
        text = f"{notice.title}: {notice.body}" if notice.body else notice.title
        self._status_bar.showMessage(text, STATUS_TIMEOUT_MS)
        if notice.severity != SEVERITY.ERROR:
            return
        logger.debug("Showing error box: {}", text)
        box = _message_box(
            QMessageBox.Icon.Critical, notice.title, notice.body, self._parent
        )
        box.setAttribute(Qt.WidgetAttribute.WA_DeleteOnClose)
        # open() not exec(): must not nest an event loop inside a coroutine
        box.open()
