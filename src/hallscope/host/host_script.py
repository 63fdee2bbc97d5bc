# -*- coding: utf-8 -*-
"""
Entry point for `hallscope.host.client.start_bg_host`: runs the mock host in
its own process, configured from argv.
"""

import asyncio
import os
import sys

from hallscope.host.mock_host import start_host

if __name__ == "__main__":
    sys.path.append(os.getcwd())

    host: str = sys.argv[1]
    msg_port: int = int(sys.argv[2])
    notif_port: int = int(sys.argv[3])
    drop_rate: float = float(sys.argv[4])
    log_path: str = sys.argv[5]
    clear_prev_log: bool = sys.argv[6] == "True"
    log_to_file: bool = sys.argv[7] == "True"
    log_to_stdout: bool = sys.argv[8] == "True"
    log_level: str = str(sys.argv[9])

    asyncio.run(
        start_host(
            host,
            msg_port,
            notif_port,
            drop_rate=drop_rate,
            log_path=log_path,
            log_to_stdout=log_to_stdout,
            clear_prev_log=clear_prev_log,
            log_to_file=log_to_file,
            log_level=log_level,
        )
    )
