# Main window of the hallscope GUI: live/polar charts plus device, motor and run controls

import asyncio
import os
from typing import Optional

import qasync
from loguru import logger
from PyQt6.QtGui import QAction, QKeySequence
from PyQt6.QtWidgets import (
    QApplication,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QPushButton,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

import hallscope
from hallscope.gui.figures import LiveChart, PolarChart
from hallscope.gui.util import (
    HallscopeStatusBar,
    QtNotifier,
    add_row_to_layout,
    get_dropdown_widget,
    get_spin_box_widget,
    set_combo_items,
)
from hallscope.host import HostConnectionManager
from hallscope.session import BUFFER_MODE, REDRAW, AcquisitionSession
from hallscope.types import (
    SEVERITY,
    AcquisitionRun,
    CommandError,
    CommsError,
    DeviceConfig,
    Notice,
    OutputPaths,
    SessionStateError,
)
from hallscope.util.settings import Settings, save_settings

LIVE_VIEW = "live"
POLAR_VIEW = "polar"


class RunDialog(QDialog):
    """Collects the parameters of one acquisition run."""

    _SUFFIXES = {"laser": "laser", "hall": "hall", "voltage": "v"}

    def __init__(self, settings: Settings, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Start acquisition")
        self._output_dir = settings.run.output_dir or os.getcwd()

        layout = QFormLayout(self)
        self.label = QLineEdit()
        self.label.textChanged.connect(self._fill_paths)
        layout.addRow("Run label", self.label)

        _, self.hall_distance = get_spin_box_widget(
            "", settings.run.hall_distance_mm, 0, 10000, 0.5, decimals=2
        )
        layout.addRow("Hall distance (mm)", self.hall_distance)
        _, self.laser_distance = get_spin_box_widget(
            "", settings.run.laser_distance_mm, 0, 10000, 0.5, decimals=2
        )
        layout.addRow("Laser distance (mm)", self.laser_distance)

        self.paths: dict[str, QLineEdit] = {}
        for name in ("laser", "hall", "voltage"):
            edit = QLineEdit()
            browse = QPushButton("...")
            browse.setFixedWidth(30)
            browse.clicked.connect(lambda _, n=name: self._browse(n))
            row = QHBoxLayout()
            row.addWidget(edit)
            row.addWidget(browse)
            layout.addRow(f"{name.capitalize()} file", row)
            self.paths[name] = edit

        buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addRow(buttons)

    def _fill_paths(self, label: str):
        for name, edit in self.paths.items():
            edit.setText(
                os.path.join(self._output_dir, f"{label}_{self._SUFFIXES[name]}.txt")
                if label
                else ""
            )

    def _browse(self, name: str):
        path, _ = QFileDialog.getSaveFileName(
            self, f"{name.capitalize()} output file", self.paths[name].text()
        )
        if path:
            self.paths[name].setText(path)

    def run(self) -> AcquisitionRun:
        return AcquisitionRun(
            label=self.label.text().strip(),
            hall_distance_mm=self.hall_distance.value(),
            laser_distance_mm=self.laser_distance.value(),
            output_paths=OutputPaths(
                laser=self.paths["laser"].text().strip(),
                hall=self.paths["hall"].text().strip(),
                voltage=self.paths["voltage"].text().strip(),
            ),
        )


class MainWindow(QMainWindow):
    def __init__(
        self,
        manager: HostConnectionManager,
        settings: Optional[Settings] = None,
        settings_path: Optional[str] = None,
    ):
        super().__init__()
        self.manager = manager
        self.settings = settings if settings is not None else Settings()
        self.settings_path = settings_path
        self._shutting_down = False

        self.setWindowTitle(f"hallscope {hallscope.__version__}")
        self.setGeometry(0, 0, 1400, 850)

        self.status_bar = HallscopeStatusBar(self)
        self.setStatusBar(self.status_bar)
        self.notifier = QtNotifier(self, self.status_bar)

        self.session = AcquisitionSession(
            manager, manager.bus, notifier=self.notifier, config=self.settings.stream
        )

        central = QWidget(self)
        self.setCentralWidget(central)
        main_layout = QHBoxLayout(central)
        main_layout.addWidget(self._create_control_panel(), 0)
        main_layout.addWidget(self._create_tabs(), 1)

        self._create_actions()
        self._connect_session_signals()
        self._apply_controls()

    # ------------------------------------------------------------ layout

    def _create_tabs(self) -> QTabWidget:
        self.tabs = QTabWidget(self)
        self.live_tab, self.polar_tab = QWidget(self.tabs), QWidget(self.tabs)
        QVBoxLayout(self.live_tab)
        QVBoxLayout(self.polar_tab)
        self.tabs.addTab(self.live_tab, "Live")
        self.tabs.addTab(self.polar_tab, "Polar")
        self.tabs.tabBar().setStyleSheet("font-weight: bold; font-size: 12pt;")

        sync = self.session.chart_sync
        max_points = self.session.stream.config.max_buffer_length
        sync.bind(
            LIVE_VIEW,
            lambda: LiveChart(self.live_tab, max_points=max_points),
            REDRAW.INCREMENTAL,
            visible=True,
        )
        sync.bind(POLAR_VIEW, lambda: PolarChart(self.polar_tab), REDRAW.FULL)
        self.tabs.currentChanged.connect(self._on_tab_changed)
        return self.tabs

    def _create_control_panel(self) -> QWidget:
        panel = QWidget(self)
        panel.setFixedWidth(340)
        layout = QVBoxLayout(panel)

        # device
        self.device_group = QGroupBox("Device")
        device_layout = QVBoxLayout(self.device_group)
        hall_label, self.hall_port = get_dropdown_widget("Hall port", [])
        motor_label, self.motor_port = get_dropdown_widget("Motor port", [])
        self.laser_addr = QLineEdit(self.settings.device.laser_addr)
        self.refresh_btn = QPushButton("Refresh ports")
        self.refresh_btn.clicked.connect(self.refresh_ports)
        add_row_to_layout(device_layout, (hall_label, 1), (self.hall_port, 2))
        add_row_to_layout(device_layout, (motor_label, 1), (self.motor_port, 2))
        add_row_to_layout(device_layout, (QLabel("Laser"), 1), (self.laser_addr, 2))
        add_row_to_layout(device_layout, self.refresh_btn)
        layout.addWidget(self.device_group)

        self.connect_btn = QPushButton("Connect")
        self.connect_btn.clicked.connect(self.connect_device)
        self.disconnect_btn = QPushButton("Disconnect")
        self.disconnect_btn.clicked.connect(self.disconnect_device)
        add_row_to_layout(layout, self.connect_btn, self.disconnect_btn)

        # motor
        run = self.settings.run
        self.motor_group = QGroupBox("Motor")
        motor_layout = QVBoxLayout(self.motor_group)
        speed_label, self.speed = get_spin_box_widget(
            "Speed (rpm)", run.motor_speed_rpm, 0.01, 100, 0.1, decimals=2
        )
        angle_label, self.step_angle = get_spin_box_widget(
            "Step angle (deg)", run.step_angle, 0.01, 360, 0.1, decimals=2
        )
        pulse_label, self.circle_pulse = get_spin_box_widget(
            "Pulses / rev", run.circle_pulse, 1, 10000000, 100
        )
        for label, spin, slot in (
            (speed_label, self.speed, self.set_speed),
            (angle_label, self.step_angle, self.set_step_angle),
            (pulse_label, self.circle_pulse, self.set_circle_pulse),
        ):
            set_btn = QPushButton("Set")
            set_btn.clicked.connect(slot)
            add_row_to_layout(motor_layout, (label, 2), (spin, 2), (set_btn, 1))

        self.angle_readout = QLabel("Angle: -")
        read_btn = QPushButton("Read")
        read_btn.clicked.connect(self.read_angle)
        calibrate_btn = QPushButton("Set origin")
        calibrate_btn.clicked.connect(self.calibrate)
        add_row_to_layout(motor_layout, (self.angle_readout, 2), read_btn, calibrate_btn)

        jog_up = QPushButton("Jog +")
        jog_up.pressed.connect(self.jog_up)
        jog_up.released.connect(self.motor_stop)
        jog_down = QPushButton("Jog -")
        jog_down.pressed.connect(self.jog_down)
        jog_down.released.connect(self.motor_stop)
        add_row_to_layout(motor_layout, jog_up, jog_down)

        step_btn = QPushButton("Step")
        step_btn.clicked.connect(self.rotate_step)
        circle_btn = QPushButton("One revolution")
        circle_btn.clicked.connect(self.rotate_one_circle)
        stop_motor_btn = QPushButton("Stop motor")
        stop_motor_btn.clicked.connect(self.motor_stop)
        add_row_to_layout(motor_layout, step_btn, circle_btn, stop_motor_btn)
        layout.addWidget(self.motor_group)

        # acquisition
        self.start_btn = QPushButton("Start...")
        self.start_btn.clicked.connect(self.open_run_dialog)
        self.stop_btn = QPushButton("Stop")
        self.stop_btn.clicked.connect(self.stop_run)
        run_group = QGroupBox("Acquisition")
        run_layout = QVBoxLayout(run_group)
        self.run_label = QLabel("No run")
        run_layout.addWidget(self.run_label)
        add_row_to_layout(run_layout, self.start_btn, self.stop_btn)
        layout.addWidget(run_group)

        layout.addStretch(1)
        return panel

    def _create_actions(self):
        quit_action_1 = QAction("Quit", self)
        quit_action_1.setShortcut(QKeySequence.StandardKey.Quit)
        quit_action_1.triggered.connect(self.close)
        self.addAction(quit_action_1)
        quit_action_2 = QAction("Close", self)
        quit_action_2.setShortcut(QKeySequence.StandardKey.Close)
        quit_action_2.triggered.connect(self.close)
        self.addAction(quit_action_2)

    def _connect_session_signals(self):
        self.session.state.state_changed.connect(self._on_state_changed)
        self.session.ports.ports_changed.connect(self._on_ports_changed)
        stream = self.session.stream
        stream.sample_accepted.connect(
            lambda _: self.status_bar.set_sample_count(len(stream))
        )
        stream.reset.connect(lambda: self.status_bar.set_sample_count(len(stream)))

    # ------------------------------------------------------------ session -> widgets

    def _apply_controls(self):
        c = self.session.state.controls()
        host_up = self.manager.is_connected()
        self.device_group.setEnabled(c.device_config and host_up)
        self.connect_btn.setEnabled(c.connect and host_up)
        self.disconnect_btn.setEnabled(c.disconnect)
        self.motor_group.setEnabled(c.motor)
        self.start_btn.setEnabled(c.start)
        self.stop_btn.setEnabled(c.stop)

    def _on_state_changed(self, old_state: str, new_state: str):
        self.status_bar.set_session_state(new_state)
        run = self.session.state.current_run
        self.run_label.setText(f"Run: {run.label}" if run else "No run")
        if self.session.state.last_motor_angle is None:
            self.angle_readout.setText("Angle: -")
        self._apply_controls()

    def _on_ports_changed(self, ports):
        items = [(f"{p.id} ({p.description})", p.id) for p in ports]
        for combo, preferred in (
            (self.hall_port, self.settings.device.hall_port),
            (self.motor_port, self.settings.device.motor_port),
        ):
            had_selection = combo.currentData() is not None
            set_combo_items(combo, items)
            if not had_selection:
                idx = combo.findData(preferred)
                if idx >= 0:
                    combo.setCurrentIndex(idx)

    def _on_tab_changed(self, index: int):
        polar = self.tabs.widget(index) is self.polar_tab
        sync = self.session.chart_sync
        # hide first, so the revealed view loads the buffer in its own mode
        sync.set_visible(LIVE_VIEW if polar else POLAR_VIEW, False)
        self.session.stream.set_mode(
            BUFFER_MODE.REVOLUTION if polar else BUFFER_MODE.RING
        )
        sync.set_visible(POLAR_VIEW if polar else LIVE_VIEW, True)

    # ------------------------------------------------------------ async actions

    async def _guarded(self, coro):
        """Await a session call. Command failures were already reported by the
        gateway; bad input and refused actions are reported here."""
        try:
            return await coro
        except ValueError as e:
            self.session.gateway.forward(Notice(SEVERITY.ERROR, "Invalid input", str(e)))
        except SessionStateError as e:
            logger.warning(str(e))
            self.session.gateway.forward(Notice(SEVERITY.WARNING, "Not now", str(e)))
        except CommandError as e:
            logger.debug("{} failed: {}", e.command, e.reason)
        return None

    async def startup(self):
        host = self.settings.host
        try:
            await self.manager.connect(
                host.host, host.msg_port, host.timeout, host.request_retries
            )
        except CommsError as e:
            logger.error("Could not reach host: {}", e)
            self.session.gateway.report_failure("Host unreachable", str(e))
        self.status_bar.set_host_status(self.manager.is_connected())
        await self.session.mount()
        self._apply_controls()
        if self.manager.is_connected():
            await self.session.ports.refresh()

    @qasync.asyncSlot()
    async def refresh_ports(self):
        await self.session.ports.refresh()

    @qasync.asyncSlot()
    async def connect_device(self):
        config = DeviceConfig(
            hall_port=self.hall_port.currentData() or "",
            motor_port=self.motor_port.currentData() or "",
            laser_addr=self.laser_addr.text().strip(),
        )
        await self._guarded(self.session.state.connect(config))
        if self.session.state.device_config is not None:
            self.settings.device = config

    @qasync.asyncSlot()
    async def disconnect_device(self):
        await self._guarded(self.session.state.disconnect())

    def open_run_dialog(self):
        dialog = RunDialog(self.settings, self)
        if dialog.exec() != QDialog.DialogCode.Accepted:
            return
        run = dialog.run()
        self.settings.run.hall_distance_mm = run.hall_distance_mm
        self.settings.run.laser_distance_mm = run.laser_distance_mm
        if run.output_paths.hall:
            self.settings.run.output_dir = os.path.dirname(run.output_paths.hall)
        self.start_run(run)

    @qasync.asyncSlot(object)
    async def start_run(self, run: AcquisitionRun):
        await self._guarded(self.session.state.start(run))

    @qasync.asyncSlot()
    async def stop_run(self):
        await self._guarded(self.session.state.stop())

    @qasync.asyncSlot()
    async def set_speed(self):
        self.settings.run.motor_speed_rpm = self.speed.value()
        await self._guarded(self.session.state.set_motor_speed(self.speed.value()))

    @qasync.asyncSlot()
    async def set_step_angle(self):
        self.settings.run.step_angle = self.step_angle.value()
        await self._guarded(
            self.session.state.set_motor_single_angle(self.step_angle.value())
        )

    @qasync.asyncSlot()
    async def set_circle_pulse(self):
        self.settings.run.circle_pulse = self.circle_pulse.value()
        await self._guarded(
            self.session.state.set_motor_single_circle_pulse(self.circle_pulse.value())
        )

    @qasync.asyncSlot()
    async def read_angle(self):
        angle = await self._guarded(self.session.state.query_motor_angle())
        if angle is not None:
            self.angle_readout.setText(f"Angle: {angle:.2f}°")

    @qasync.asyncSlot()
    async def calibrate(self):
        await self._guarded(self.session.state.calibrate())
        if self.session.state.last_motor_angle == 0.0:
            self.angle_readout.setText("Angle: 0.00°")

    @qasync.asyncSlot()
    async def jog_up(self):
        await self._guarded(self.session.state.jog_up())

    @qasync.asyncSlot()
    async def jog_down(self):
        await self._guarded(self.session.state.jog_down())

    @qasync.asyncSlot()
    async def motor_stop(self):
        await self._guarded(self.session.state.motor_stop())

    @qasync.asyncSlot()
    async def rotate_step(self):
        await self._guarded(self.session.state.rotate_step())

    @qasync.asyncSlot()
    async def rotate_one_circle(self):
        await self._guarded(self.session.state.rotate_one_circle())

    # ------------------------------------------------------------ shutdown

    async def shutdown(self):
        """Stop any run, release the device, tear down the view, then quit."""
        state = self.session.state
        await self._guarded(state.stop())
        await self._guarded(state.disconnect())
        await self.session.unmount()
        self.session.chart_sync.close()
        if self.manager.owns_local_host:
            await self.manager.stop_host()
        else:
            await self.manager.disconnect()
        try:
            save_settings(self.settings, self.settings_path)
        except OSError as e:
            logger.error("Could not save settings: {}", e)
        logger.info("Shutdown complete.")
        QApplication.instance().quit()

    def closeEvent(self, event):
        if self._shutting_down:
            event.accept()
            return
        logger.info("Close requested, shutting down.")
        self._shutting_down = True
        event.ignore()
        asyncio.ensure_future(self.shutdown())
