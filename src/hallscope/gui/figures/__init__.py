from .live_chart import LiveChart
from .matplotlib_canvas import MplCanvas
from .polar_chart import KEY_KIND, PolarChart, format_key

__all__ = ["LiveChart", "MplCanvas", "KEY_KIND", "PolarChart", "format_key"]
