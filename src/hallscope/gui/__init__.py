"""
Graphical user interface for hallscope.

A PyQt6 main window around one `hallscope.session.AcquisitionSession`:

- Device panel (hall/motor ports, laser address), connect/disconnect
- Motor panel (speed, step angle, pulses per revolution, jog, origin)
- Run dialog (label, distances, output files), start/stop
- Live (cartesian) and Polar (one revolution) matplotlib charts

Qt and asyncio share one loop through qasync, so session coroutines are
awaited directly from slots.

Examples
--------
```bash
$ hallscope gui --mock
```

See Also
--------
hallscope.session : the acquisition session the window drives
hallscope.cli : Command-line interface
"""
