from PyQt6.QtCore import Qt
from PyQt6.QtWidgets import (
    QComboBox,
    QDoubleSpinBox,
    QHBoxLayout,
    QLabel,
    QSpinBox,
    QWidget,
)


def add_row_to_layout(layout, *widgets: QWidget | tuple[QWidget, int]):
    """Helper method to add a row of widgets to a layout."""
    row = QHBoxLayout()
    for widget in widgets:
        if isinstance(widget, tuple):
            widget, width = widget
            row.addWidget(widget, width)
        else:
            row.addWidget(widget)
    layout.addLayout(row)


def get_spin_box_widget(
    label: str,
    default_value: float,
    min_value: float = 0,
    max_value: float = 1000000000,
    single_step: float = 1,
    decimals: int = 0,
):
    label_widget = QLabel(label)
    if decimals == 0:
        spin_box = QSpinBox()
        default_value, min_value, max_value, single_step = (
            int(default_value),
            int(min_value),
            int(max_value),
            int(single_step),
        )
    else:
        spin_box = QDoubleSpinBox()
        spin_box.setDecimals(decimals)
    spin_box.setAlignment(Qt.AlignmentFlag.AlignCenter)
    spin_box.setRange(min_value, max_value)
    spin_box.setValue(default_value)
    spin_box.setSingleStep(single_step)
    return label_widget, spin_box


def get_dropdown_widget(label: str, items: list[str]):
    label_widget = QLabel(label)
    dropdown = QComboBox()
    for item in items:
        dropdown.addItem(item)
    return label_widget, dropdown


def set_combo_items(combo: QComboBox, items: list[tuple[str, str]]):
    """Replace all entries (text, data), keeping the selection if it survives."""
    current = combo.currentData()
    combo.blockSignals(True)
    combo.clear()
    for text, data in items:
        combo.addItem(text, data)
    idx = combo.findData(current)
    if idx >= 0:
        combo.setCurrentIndex(idx)
    combo.blockSignals(False)
