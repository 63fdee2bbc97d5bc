from .error_handling import QtNotifier, show_critical_error, show_info, show_warning
from .layout_building import (
    add_row_to_layout,
    get_dropdown_widget,
    get_spin_box_widget,
    set_combo_items,
)
from .statusbar import HallscopeStatusBar
