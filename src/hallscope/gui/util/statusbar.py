from PyQt6.QtWidgets import QLabel, QStatusBar

from hallscope.session import SESSION_STATE

_STATE_COLOURS = {
    SESSION_STATE.DISCONNECTED: "grey",
    SESSION_STATE.CONFIGURING: "orange",
    SESSION_STATE.CONNECTED: "green",
    SESSION_STATE.ACQUIRING: "dodgerblue",
    SESSION_STATE.FAULTING: "red",
}


class HallscopeStatusBar(QStatusBar):
    """Status bar with host and session state indicators."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.host_status = QLabel("Host: Not connected")
        self.session_status = QLabel()
        self.sample_count = QLabel("Samples: 0")
        self.addPermanentWidget(self.sample_count)
        self.addPermanentWidget(self.host_status)
        self.addPermanentWidget(self.session_status)
        self.set_session_state(SESSION_STATE.DISCONNECTED)

    def set_host_status(self, connected: bool):
        self.host_status.setText(
            "Host: Connected" if connected else "Host: Not connected"
        )

    def set_session_state(self, state: str):
        colour = _STATE_COLOURS.get(state, "grey")
        self.session_status.setText(f"Session: {state}")
        self.session_status.setStyleSheet(f"color: {colour}; font-weight: bold;")

    def set_sample_count(self, n: int):
        self.sample_count.setText(f"Samples: {n}")
