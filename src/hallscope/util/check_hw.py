import serial.tools.list_ports


def get_hw_ports() -> dict[str, str]:
    """Serial ports with real hardware behind them, device -> description."""
    port_dict = dict()
    for p in list(serial.tools.list_ports.comports()):
        # Only include if there's actual hardware info
        if p.hwid != "n/a":
            port_dict[p.device] = p.description
    return port_dict
