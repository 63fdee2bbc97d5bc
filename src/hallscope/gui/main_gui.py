import asyncio
import sys
from typing import Optional

import qasync
from loguru import logger
from PyQt6.QtWidgets import QApplication

from hallscope.gui.main_window import MainWindow
from hallscope.host import HostConnectionManager
from hallscope.util import DEFAULT_LOGLEVEL, shutdown_client_log, start_client_log
from hallscope.util.settings import load_settings


def main_gui(
    host: str = "",
    msg_port: Optional[int] = None,
    mock: bool = False,
    drop_rate: float = 0.0,
    settings_path: Optional[str] = None,
    log_to_file: bool = True,
    log_to_stdout: bool = True,
    log_path: Optional[str] = None,
    clear_prev_log: bool = True,
    log_level: str = DEFAULT_LOGLEVEL,
):
    start_client_log(
        log_to_file=log_to_file,
        log_to_stdout=log_to_stdout,
        log_path=log_path,
        clear_prev=clear_prev_log,
        log_level=log_level,
    )
    settings = load_settings(settings_path)
    if host:
        settings.host.host = host
    if msg_port:
        settings.host.msg_port = int(msg_port)

    manager = HostConnectionManager()
    if mock:
        manager.start_local_host(
            settings.host.host,
            settings.host.msg_port,
            settings.host.msg_port + 1,
            drop_rate=drop_rate,
            log_level=log_level,
        )

    app = QApplication(sys.argv)
    app.setStyle("Fusion")
    loop = qasync.QEventLoop(app)
    asyncio.set_event_loop(loop)

    window = MainWindow(manager, settings, settings_path)
    window.show()

    try:
        with loop:
            loop.create_task(window.startup())
            loop.run_forever()
        logger.info("Event loop finished.")
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
    finally:
        # the window normally stops it; make sure a crash does not orphan it
        if manager.owns_local_host:
            manager.kill_local_host()
        shutdown_client_log()
    return 0


if __name__ == "__main__":
    sys.exit(main_gui())
