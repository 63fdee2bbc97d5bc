"""
The real-time acquisition session: command gateway, port registry, sample
stream, session state machine and chart synchronisation.

None of these modules import zmq or Qt; they talk to the host through a
`hallscope.types.HostInvoker` and to the user through a
`hallscope.types.Notifier`, so they can be driven by fakes in test.
"""

from .chart_sync import REDRAW, ChartSync
from .gateway import CommandGateway, LogNotifier
from .ports import PortRegistry
from .realtime import AcquisitionSession, RealTimeView
from .state import SESSION_STATE, ControlState, SessionStateMachine
from .stream import BUFFER_MODE, SOURCE, SampleStream, coerce_sample

__all__ = [
    "REDRAW",
    "ChartSync",
    "CommandGateway",
    "LogNotifier",
    "PortRegistry",
    "AcquisitionSession",
    "RealTimeView",
    "SESSION_STATE",
    "ControlState",
    "SessionStateMachine",
    "BUFFER_MODE",
    "SOURCE",
    "SampleStream",
    "coerce_sample",
]
