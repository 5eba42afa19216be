"""Desktop HUD runtime, view-model, and QML integration."""

from __future__ import annotations

import json
import os
import sys
import tempfile
from importlib import metadata
from pathlib import Path
from typing import Any

from PySide6.QtCore import QObject, Property, Qt, QUrl, Signal, Slot
from PySide6.QtGui import QAction, QDesktopServices, QIcon, QWindow
from PySide6.QtQml import QQmlApplicationEngine
from PySide6.QtWidgets import QApplication, QMenu, QSystemTrayIcon

from hostpulse_core import (
    AppConfig,
    DiagnosticsExporter,
    EventBus,
    TELEMETRY_TOPIC,
    TelemetryRuntime,
    build_doctor_payload,
    get_specs,
    load_config,
    save_config,
    set_click_through,
)
from hostpulse_core.logging_setup import configure_logging, get_logger, install_crash_hooks


_GB = 1024**3


def _app_version() -> str:
    try:
        return metadata.version("hostpulse")
    except Exception:
        return "0.1.0"


class QtWindowSurface:
    """Adapts a QWindow to the pointer-passthrough surface used by the commands."""

    def __init__(self, window: QWindow | None) -> None:
        self._window = window

    def set_ignore_cursor_events(self, ignore: bool) -> None:
        if self._window is None:
            raise RuntimeError("no presentation window attached")
        # Raises RuntimeError once the underlying C++ window has been deleted.
        self._window.setFlag(Qt.WindowType.WindowTransparentForInput, ignore)


class HostPulseViewModel(QObject):
    cpuTextChanged = Signal()
    memoryTextChanged = Signal()
    temperaturesJsonChanged = Signal()
    specsJsonChanged = Signal()
    clickThroughChanged = Signal()
    lastErrorChanged = Signal()
    diagnosticsPathChanged = Signal()
    showTemperaturesChanged = Signal()
    appVersionChanged = Signal()

    # Crosses from the telemetry thread into the Qt thread as a queued call.
    _telemetryArrived = Signal(object)

    def __init__(self, bus: EventBus, config: AppConfig | None = None) -> None:
        super().__init__()
        self.config: AppConfig = config or load_config()
        self.logger = get_logger()
        self.bus = bus
        self.diagnostics = DiagnosticsExporter()
        self._surface = QtWindowSurface(None)

        self._app_version = _app_version()
        self._cpu_text = "CPU --"
        self._memory_text = "RAM --"
        self._temperatures_json = "[]"
        self._specs_json = "{}"
        self._click_through = False
        self._last_error = ""
        self._diagnostics_path = ""
        self._last_payload: dict[str, Any] | None = None

        self._telemetryArrived.connect(self._on_telemetry)
        self._unsubscribe = bus.subscribe(TELEMETRY_TOPIC, self._telemetryArrived.emit)

    @Property(str, notify=appVersionChanged)
    def appVersion(self) -> str:
        return self._app_version

    @Property(str, notify=cpuTextChanged)
    def cpuText(self) -> str:
        return self._cpu_text

    @Property(str, notify=memoryTextChanged)
    def memoryText(self) -> str:
        return self._memory_text

    @Property(str, notify=temperaturesJsonChanged)
    def temperaturesJson(self) -> str:
        return self._temperatures_json

    @Property(str, notify=specsJsonChanged)
    def specsJson(self) -> str:
        return self._specs_json

    @Property(bool, notify=clickThroughChanged)
    def clickThrough(self) -> bool:
        return self._click_through

    @Property(str, notify=lastErrorChanged)
    def lastError(self) -> str:
        return self._last_error

    @Property(str, notify=diagnosticsPathChanged)
    def diagnosticsPath(self) -> str:
        return self._diagnostics_path

    @Property(bool, notify=showTemperaturesChanged)
    def showTemperatures(self) -> bool:
        return bool(self.config.ui.show_temperatures)

    def _set_text(self, field: str, value: str, signal: Signal) -> None:
        if getattr(self, field) != value:
            setattr(self, field, value)
            signal.emit()

    def attach_window(self, window: QWindow) -> None:
        self._surface = QtWindowSurface(window)
        window.setFlag(Qt.WindowType.WindowStaysOnTopHint, self.config.window.always_on_top)
        window.setOpacity(self.config.window.opacity)
        if self.config.window.click_through:
            self.setClickThrough(True)

    def _on_telemetry(self, payload: dict[str, Any]) -> None:
        self._last_payload = payload
        self._set_text("_cpu_text", f"CPU {payload['cpu_usage']:05.1f}%", self.cpuTextChanged)
        self._set_text(
            "_memory_text",
            f"RAM {payload['memory_used'] / _GB:04.1f}/{payload['memory_total'] / _GB:04.1f} GB",
            self.memoryTextChanged,
        )
        self._set_text("_temperatures_json", json.dumps(payload["temperatures"], allow_nan=False), self.temperaturesJsonChanged)

    @Slot(result=str)
    def getSpecs(self) -> str:
        specs = json.dumps(get_specs().to_dict(), sort_keys=True)
        self._set_text("_specs_json", specs, self.specsJsonChanged)
        return specs

    @Slot(bool, result=str)
    def setClickThrough(self, passthrough: bool) -> str:
        result = set_click_through(self._surface, passthrough)
        if not result.success:
            self.logger.warning(f"click-through failed: {result.error}", extra={"event": "click_through_failed"})
            self._set_text("_last_error", result.error or "", self.lastErrorChanged)
            return result.error or ""

        self._set_text("_last_error", "", self.lastErrorChanged)
        if self._click_through != bool(passthrough):
            self._click_through = bool(passthrough)
            self.clickThroughChanged.emit()
        if self.config.window.click_through != self._click_through:
            self.config.window.click_through = self._click_through
            save_config(self.config)
        return ""

    @Slot(bool)
    def setShowTemperatures(self, enabled: bool) -> None:
        if self.config.ui.show_temperatures != bool(enabled):
            self.config.ui.show_temperatures = bool(enabled)
            save_config(self.config)
            self.showTemperaturesChanged.emit()

    @Slot()
    def exportDiagnostics(self) -> None:
        doctor = build_doctor_payload(self.config)
        zip_path = self.diagnostics.bundle(
            cfg=self.config,
            doctor_payload=doctor,
            recent_telemetry=[self._last_payload] if self._last_payload else [],
            output_dir=Path(tempfile.gettempdir()),
        )
        self._set_text("_diagnostics_path", str(zip_path), self.diagnosticsPathChanged)

    @Slot()
    def openDiagnosticsPath(self) -> None:
        if not self._diagnostics_path:
            return
        QDesktopServices.openUrl(QUrl.fromLocalFile(str(Path(self._diagnostics_path))))

    def shutdown(self) -> None:
        self._unsubscribe()
        save_config(self.config)


def run_gui() -> int:
    config = load_config()
    configure_logging(keep_files=config.diagnostics.keep_log_files)
    install_crash_hooks(fault_log_limit=config.diagnostics.max_bundle_mb * 1024 * 1024)
    logger = get_logger()

    os.environ.setdefault("QT_ENABLE_HIGHDPI_SCALING", "1")
    QApplication.setHighDpiScaleFactorRoundingPolicy(Qt.HighDpiScaleFactorRoundingPolicy.PassThrough)

    app = QApplication(sys.argv)
    app.setApplicationName("HostPulse")
    app.setOrganizationName("HostPulse")

    bus = EventBus()
    vm = HostPulseViewModel(bus, config)

    engine = QQmlApplicationEngine()
    engine.rootContext().setContextProperty("vm", vm)
    qml_path = str(Path(__file__).with_name("qml") / "Main.qml")
    engine.load(qml_path)

    if not engine.rootObjects():
        logger.error("failed to load QML")
        return 1
    vm.attach_window(engine.rootObjects()[0])

    runtime = TelemetryRuntime(bus)
    runtime.start()

    tray = None
    if QSystemTrayIcon.isSystemTrayAvailable():
        icon = QIcon.fromTheme("utilities-system-monitor")
        tray = QSystemTrayIcon(icon, app)
        tray.setToolTip("HostPulse")
        menu = QMenu()

        # A passthrough window cannot be clicked, so the tray is the way back.
        click_action = QAction("Click-through", menu)
        click_action.setCheckable(True)
        click_action.setChecked(vm.clickThrough)
        click_action.toggled.connect(vm.setClickThrough)
        vm.clickThroughChanged.connect(lambda: click_action.setChecked(vm.clickThrough))
        menu.addAction(click_action)

        diagnostics_action = QAction("Export Diagnostics", menu)
        diagnostics_action.triggered.connect(vm.exportDiagnostics)
        menu.addAction(diagnostics_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(app.quit)
        menu.addAction(quit_action)

        tray.setContextMenu(menu)
        tray.show()

    exit_code = app.exec()
    runtime.stop()
    vm.shutdown()
    logger.info("app shutdown", extra={"event": "shutdown", "exit_code": int(exit_code)})
    return int(exit_code)
