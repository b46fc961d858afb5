from __future__ import annotations

"""Qt panel showing the eight drive slots and the server-side settings.

The panel is the ``DriveView`` of a ``DriveSession``.  Render calls arrive
on the engine thread and are marshalled onto the GUI thread through
``_invoke``; user actions go the other way as named intents handed to the
session host's ``dispatch``.

Usage (from the launcher):

    panel = DrivePanel()
    host = SessionHost(config, panel)
    host.start()
    panel.attach(host)
    panel.show()
"""

import asyncio
import concurrent.futures
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from qtpy import QtCore, QtWidgets

from oqta_client.client.control.session import TAB_DRIVES, TAB_FILES, TAB_SEARCH
from oqta_client.client.state.formats import ACCEPTED_SUFFIXES
from oqta_client.client.state.range_solver import MAPPING_OFF, RangeSolution, SlotValue, solve
from oqta_client.client.state.reconciler import MappingView, UiState, rumble_hint
from oqta_client.protocol import SLOT_COUNT, SearchResult

logger = logging.getLogger(__name__)

TAB_CONFIG = "config"

# selector entries: slots 1..8, then the off entry
_MAP_CHOICES = [str(i) for i in range(1, SLOT_COUNT + 1)] + [MAPPING_OFF]

# plain-text stand-ins for the status icons
_GLYPHS: Dict[str, str] = {
    "bi-none": "",
    "bi-app": "□",
    "bi-caret-right-square": "▶",
    "bi-gear": "⚙",
    "bi-hr": "—",
    "bi-lock": "\U0001f512",
    "bi-unlock": "\U0001f513",
    "bi-app-indicator": "▣",
    "bi-plug-fill": "●",
    "bi-plug": "○",
    "bi-hourglass-split": "⌛",
}


class IntentSink(Protocol):
    def dispatch(self, action: str, *args: Any) -> Any: ...


ConfirmDialog = Callable[[QtWidgets.QWidget, str, str], bool]
FileDialog = Callable[[QtWidgets.QWidget, int], Optional[str]]


def _ask(parent: QtWidgets.QWidget, title: str, message: str) -> bool:
    answer = QtWidgets.QMessageBox.question(
        parent,
        title,
        message,
        QtWidgets.QMessageBox.Yes | QtWidgets.QMessageBox.No,
        QtWidgets.QMessageBox.No,
    )
    return answer == QtWidgets.QMessageBox.Yes


def _open_file(parent: QtWidgets.QWidget, slot: int) -> Optional[str]:
    patterns = " ".join(f"*{sfx} *{sfx.upper()}" for sfx in ACCEPTED_SUFFIXES)
    path, _ = QtWidgets.QFileDialog.getOpenFileName(
        parent,
        f"Load cartridge into drive {slot}",
        "",
        f"Cartridges ({patterns});;All files (*)",
    )
    return path or None


def _to_slot_value(text: str) -> SlotValue:
    return MAPPING_OFF if text == MAPPING_OFF else int(text)


class DrivePanel(QtWidgets.QWidget):
    _invoke = QtCore.Signal(object)

    def __init__(
        self,
        parent: Optional[QtWidgets.QWidget] = None,
        *,
        confirm_dialog: ConfirmDialog = _ask,
        file_dialog: FileDialog = _open_file,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("OqtaDrive")
        self._confirm_dialog = confirm_dialog
        self._file_dialog = file_dialog
        self._host: Optional[IntentSink] = None
        self._mapping_locked = False
        self._files_slot: Optional[int] = None

        self._build_ui()
        self._connect_signals()
        self._invoke.connect(self._run_on_gui)

    # ------------------------------- UI ---------------------------------
    def _build_ui(self) -> None:
        layout = QtWidgets.QVBoxLayout(self)

        header = QtWidgets.QHBoxLayout()
        self._client_icon = QtWidgets.QLabel(self)
        self._client_label = QtWidgets.QLabel(self)
        self._btn_resync = QtWidgets.QPushButton("Resync", self)
        self._btn_resync.setToolTip("Force re-detection of the connected client")
        header.addWidget(self._client_icon)
        header.addWidget(self._client_label, 1)
        header.addWidget(self._btn_resync)
        layout.addLayout(header)

        self._tabs = QtWidgets.QTabWidget(self)
        layout.addWidget(self._tabs, 1)

        # drives
        drives = QtWidgets.QWidget(self)
        grid = QtWidgets.QGridLayout(drives)
        self._slot_buttons: List[QtWidgets.QPushButton] = []
        self._slot_names: List[QtWidgets.QPushButton] = []
        self._slot_icons: List[QtWidgets.QLabel] = []
        for slot in range(1, SLOT_COUNT + 1):
            button = QtWidgets.QPushButton(str(slot), drives)
            name = QtWidgets.QPushButton("", drives)
            name.setFlat(True)
            name.setStyleSheet("text-align: left;")
            icon = QtWidgets.QLabel(drives)
            grid.addWidget(button, slot - 1, 0)
            grid.addWidget(name, slot - 1, 1)
            grid.addWidget(icon, slot - 1, 2)
            self._slot_buttons.append(button)
            self._slot_names.append(name)
            self._slot_icons.append(icon)
        grid.setColumnStretch(1, 1)
        self._tabs.addTab(drives, "Drives")

        # files
        files = QtWidgets.QWidget(self)
        files_layout = QtWidgets.QVBoxLayout(files)
        self._file_list = QtWidgets.QPlainTextEdit(files)
        self._file_list.setReadOnly(True)
        self._btn_unload = QtWidgets.QPushButton("Unload", files)
        self._btn_unload.setEnabled(False)
        files_layout.addWidget(self._file_list, 1)
        files_layout.addWidget(self._btn_unload)
        self._tabs.addTab(files, "Files")

        # search
        search = QtWidgets.QWidget(self)
        search_layout = QtWidgets.QVBoxLayout(search)
        row = QtWidgets.QHBoxLayout()
        self._search_edit = QtWidgets.QLineEdit(search)
        self._search_edit.setPlaceholderText("search repository…")
        self._btn_search = QtWidgets.QPushButton("Search", search)
        row.addWidget(self._search_edit, 1)
        row.addWidget(self._btn_search)
        search_layout.addLayout(row)
        self._search_total = QtWidgets.QLabel(search)
        self._search_hits = QtWidgets.QListWidget(search)
        search_layout.addWidget(self._search_total)
        search_layout.addWidget(self._search_hits, 1)
        self._tabs.addTab(search, "Search")

        # config
        config = QtWidgets.QWidget(self)
        form = QtWidgets.QFormLayout(config)
        map_row = QtWidgets.QHBoxLayout()
        self._map_start = QtWidgets.QComboBox(config)
        self._map_end = QtWidgets.QComboBox(config)
        for combo in (self._map_start, self._map_end):
            combo.addItems(_MAP_CHOICES)
            combo.setCurrentText(MAPPING_OFF)
        self._map_icon = QtWidgets.QLabel(config)
        self._btn_map_set = QtWidgets.QPushButton("Set", config)
        map_row.addWidget(self._map_start)
        map_row.addWidget(self._map_end)
        map_row.addWidget(self._map_icon)
        map_row.addWidget(self._btn_map_set)
        form.addRow("Hardware drives", map_row)

        rumble_row = QtWidgets.QHBoxLayout()
        self._rumble_level = QtWidgets.QSpinBox(config)
        self._rumble_level.setRange(0, 255)
        self._rumble_hint = QtWidgets.QLabel("-", config)
        self._btn_rumble_set = QtWidgets.QPushButton("Set", config)
        rumble_row.addWidget(self._rumble_level)
        rumble_row.addWidget(self._rumble_hint, 1)
        rumble_row.addWidget(self._btn_rumble_set)
        form.addRow("Rumble", rumble_row)
        self._set_rumble_enabled(False)

        self._version = QtWidgets.QLabel("", config)
        form.addRow("Version", self._version)
        self._tabs.addTab(config, "Config")

        self._tab_index = {TAB_DRIVES: 0, TAB_FILES: 1, TAB_SEARCH: 2, TAB_CONFIG: 3}

    def _connect_signals(self) -> None:
        for slot, (button, name) in enumerate(zip(self._slot_buttons, self._slot_names), start=1):
            button.clicked.connect(lambda _=False, n=slot: self._send("slot_action", n))
            name.clicked.connect(lambda _=False, n=slot: self._send("show_files", n))
        self._btn_resync.clicked.connect(lambda _=False: self._send("resync"))
        self._btn_unload.clicked.connect(self._on_unload)
        self._search_edit.textEdited.connect(lambda text: self._send("search_input", text))
        self._search_edit.returnPressed.connect(self._on_search_now)
        self._btn_search.clicked.connect(self._on_search_now)
        self._search_hits.itemActivated.connect(self._on_hit_activated)
        self._map_start.activated.connect(lambda _=0: self._on_map_edited(True))
        self._map_end.activated.connect(lambda _=0: self._on_map_edited(False))
        self._btn_map_set.clicked.connect(self._on_map_set)
        self._rumble_level.valueChanged.connect(self._on_rumble_changed)
        self._btn_rumble_set.clicked.connect(
            lambda _=False: self._send("set_rumble", int(self._rumble_level.value()))
        )

    def attach(self, host: IntentSink) -> None:
        self._host = host

    def _send(self, action: str, *args: Any) -> None:
        host = self._host
        if host is None:
            logger.debug("DrivePanel: no session attached; dropping %s", action)
            return
        host.dispatch(action, *args)

    # ------------------------ thread marshalling --------------------------
    def _run_on_gui(self, fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception:
            logger.exception("DrivePanel: GUI update failed")

    def _post(self, fn: Callable[[], None]) -> None:
        self._invoke.emit(fn)

    # --------------------------- DriveView API ----------------------------
    def render(self, ui: UiState) -> None:
        self._post(lambda: self._apply_ui(ui))

    def render_mapping(self, mapping: MappingView) -> None:
        self._post(lambda: self._apply_mapping(mapping))

    def render_rumble(self, level: Optional[int], hint: str) -> None:
        self._post(lambda: self._apply_rumble(level, hint))

    def render_version(self, version: str) -> None:
        self._post(lambda: self._version.setText(version))

    def render_search_results(self, term: str, result: SearchResult) -> None:
        self._post(lambda: self._apply_search(term, result))

    def render_file_list(self, slot: int, text: str) -> None:
        self._post(lambda: self._apply_file_list(slot, text))

    def show_tab(self, name: str) -> None:
        index = self._tab_index.get(name)
        if index is not None:
            self._post(lambda: self._tabs.setCurrentIndex(index))

    async def confirm(self, title: str, message: str) -> bool:
        answer: "concurrent.futures.Future[bool]" = concurrent.futures.Future()

        def _show() -> None:
            try:
                answer.set_result(bool(self._confirm_dialog(self, title, message)))
            except Exception as exc:
                answer.set_exception(exc)
                raise

        self._post(_show)
        return await asyncio.wrap_future(answer)

    async def pick_file(self, slot: int) -> Optional[Tuple[str, bytes]]:
        picked: "concurrent.futures.Future[Optional[str]]" = concurrent.futures.Future()

        def _show() -> None:
            try:
                picked.set_result(self._file_dialog(self, slot))
            except Exception as exc:
                picked.set_exception(exc)
                raise

        self._post(_show)
        path = await asyncio.wrap_future(picked)
        if not path:
            return None
        try:
            data = await asyncio.get_running_loop().run_in_executor(None, Path(path).read_bytes)
        except OSError as exc:
            logger.warning("Cannot read %s: %s", path, exc)
            return None
        return Path(path).name, data

    # ----------------------------- appliers -------------------------------
    def _apply_ui(self, ui: UiState) -> None:
        self._client_icon.setText(_GLYPHS.get(ui.client.icon, ""))
        self._client_icon.setProperty("icon", ui.client.icon)
        self._client_label.setText(ui.client.label)
        for view, button, name, icon in zip(ui.slots, self._slot_buttons, self._slot_names, self._slot_icons):
            button.setEnabled(view.enabled)
            name.setText(view.label)
            icon.setText(_GLYPHS.get(view.icon, ""))
            icon.setProperty("icon", view.icon)
            icon.setToolTip(view.display_status)

    def _apply_mapping(self, mapping: MappingView) -> None:
        self._mapping_locked = mapping.locked
        self._map_start.setCurrentText(str(mapping.start))
        self._map_end.setCurrentText(str(mapping.end))
        self._apply_solution(self._map_start, self._map_end, mapping.solution)
        for widget in (self._map_start, self._map_end, self._btn_map_set):
            widget.setEnabled(not mapping.locked)
        self._map_icon.setText(_GLYPHS.get(mapping.icon, ""))
        self._map_icon.setProperty("icon", mapping.icon)

    def _apply_solution(
        self,
        primary: QtWidgets.QComboBox,
        secondary: QtWidgets.QComboBox,
        solution: RangeSolution,
    ) -> None:
        secondary.setCurrentText(str(solution.secondary_value))
        for combo, disabled in ((primary, solution.primary_disabled), (secondary, solution.secondary_disabled)):
            model = combo.model()
            for index, flag in enumerate(disabled):
                item = model.item(index)
                if item is not None:
                    item.setEnabled(not flag)

    def _apply_rumble(self, level: Optional[int], hint: str) -> None:
        self._set_rumble_enabled(level is not None)
        self._rumble_level.blockSignals(True)
        self._rumble_level.setValue(level if level is not None else 0)
        self._rumble_level.blockSignals(False)
        self._rumble_hint.setText(hint)

    def _set_rumble_enabled(self, enabled: bool) -> None:
        self._rumble_level.setEnabled(enabled)
        self._btn_rumble_set.setEnabled(enabled)

    def _apply_search(self, term: str, result: SearchResult) -> None:
        self._search_total.setText(f"{len(result.hits)} of {result.total} matches for '{term}'")
        self._search_hits.clear()
        self._search_hits.addItems(list(result.hits))

    def _apply_file_list(self, slot: int, text: str) -> None:
        self._files_slot = slot
        self._file_list.setPlainText(text)
        self._btn_unload.setEnabled(True)

    # ---------------------------- user intents ----------------------------
    def _on_unload(self) -> None:
        if self._files_slot is not None:
            self._send("unload", self._files_slot)

    def _on_search_now(self) -> None:
        self._send("search_now", self._search_edit.text())

    def _on_hit_activated(self, item: QtWidgets.QListWidgetItem) -> None:
        self._send("select_search_result", item.text())

    def _on_map_edited(self, start_edited: bool) -> None:
        if self._mapping_locked:
            return
        primary, secondary = (
            (self._map_start, self._map_end) if start_edited else (self._map_end, self._map_start)
        )
        solution = solve(
            _to_slot_value(primary.currentText()),
            _to_slot_value(secondary.currentText()),
            start_edited,
        )
        self._apply_solution(primary, secondary, solution)

    def _on_map_set(self) -> None:
        if self._mapping_locked:
            return
        self._send(
            "set_mapping",
            _to_slot_value(self._map_start.currentText()),
            _to_slot_value(self._map_end.currentText()),
        )

    def _on_rumble_changed(self, value: int) -> None:
        self._rumble_hint.setText(rumble_hint(int(value)))

    # ----------------------------- accessors ------------------------------
    def slot_label(self, slot: int) -> str:
        return self._slot_names[slot - 1].text()

    def slot_enabled(self, slot: int) -> bool:
        return self._slot_buttons[slot - 1].isEnabled()

    def mapping_values(self) -> Tuple[str, str]:
        return self._map_start.currentText(), self._map_end.currentText()

    def mapping_option_enabled(self, start_side: bool, slot: int) -> bool:
        combo = self._map_start if start_side else self._map_end
        item = combo.model().item(slot - 1)
        return bool(item.isEnabled())

    def current_tab(self) -> str:
        index = self._tabs.currentIndex()
        for name, value in self._tab_index.items():
            if value == index:
                return name
        return TAB_DRIVES
