from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    GCCollector,
    PlatformCollector,
    ProcessCollector,
    disable_created_metrics,
    generate_latest,
)

from .parser import ClimateControlRecord, ParsedDevice

logger = logging.getLogger("daikin_exporter.publisher")

DEVICE_LABELS = ("device_id", "device_model")
CONTROL_LABELS = DEVICE_LABELS + ("device_name", "control_id")
CONTROL_MODE_LABELS = CONTROL_LABELS + ("mode",)
UPDATE_STATUSES = ("success", "error")


class MetricsPublisher:
    """Owns the exporter's Prometheus registry.

    Every call to :meth:`update_devices` clears all gauges before writing the
    new snapshot, so label combinations from devices or capabilities that
    disappeared upstream never survive a cycle. The update counter is the only
    series that accumulates across cycles.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        *,
        collect_runtime_metrics: bool = False,
    ) -> None:
        # Only the _total sample is part of the exported counter contract.
        disable_created_metrics()
        self.registry = registry if registry is not None else CollectorRegistry()
        if collect_runtime_metrics:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

        def gauge(name: str, documentation: str, labels: Sequence[str]) -> Gauge:
            return Gauge(name, documentation, labelnames=labels, registry=self.registry)

        self.room_temperature = gauge(
            "daikin_room_temperature_celsius", "Room temperature in Celsius", CONTROL_LABELS
        )
        self.room_humidity = gauge("daikin_room_humidity_percent", "Room humidity in percent", CONTROL_LABELS)
        self.outdoor_temperature = gauge(
            "daikin_outdoor_temperature_celsius", "Outdoor temperature in Celsius", CONTROL_LABELS
        )
        self.target_temperature = gauge(
            "daikin_target_temperature_celsius", "Target temperature in Celsius", CONTROL_MODE_LABELS
        )
        self.device_online = gauge(
            "daikin_device_online", "Device online status (1 = online, 0 = offline)", DEVICE_LABELS
        )
        self.device_power = gauge(
            "daikin_device_power_on", "Device power status (1 = on, 0 = off)", CONTROL_MODE_LABELS
        )
        self.powerful_mode = gauge(
            "daikin_powerful_mode", "Powerful mode status (1 = on, 0 = off)", CONTROL_LABELS
        )
        self.error_state = gauge(
            "daikin_error_state", "Device error state (1 = error, 0 = no error)", CONTROL_LABELS
        )
        self.warning_state = gauge(
            "daikin_warning_state", "Device warning state (1 = warning, 0 = no warning)", CONTROL_LABELS
        )
        self.consumption_today = gauge(
            "daikin_consumption_today_kwh", "Today energy consumption in kWh", CONTROL_LABELS
        )
        self.consumption_week = gauge(
            "daikin_consumption_week_kwh", "This week energy consumption in kWh", CONTROL_LABELS
        )
        self.consumption_month = gauge(
            "daikin_consumption_month_kwh", "This month energy consumption in kWh", CONTROL_LABELS
        )
        self.data_updates = Counter(
            "daikin_data_updates",
            "Total number of data updates from Daikin Cloud",
            labelnames=("status",),
            registry=self.registry,
        )
        for status in UPDATE_STATUSES:
            self.data_updates.labels(status=status)

    @property
    def gauges(self) -> List[Gauge]:
        return [
            self.room_temperature,
            self.room_humidity,
            self.outdoor_temperature,
            self.target_temperature,
            self.device_online,
            self.device_power,
            self.powerful_mode,
            self.error_state,
            self.warning_state,
            self.consumption_today,
            self.consumption_week,
            self.consumption_month,
        ]

    def update_devices(self, devices: Iterable[ParsedDevice]) -> bool:
        """Replace the published snapshot. Returns ``False`` if publishing failed."""
        try:
            snapshot = list(devices)
            self.clear()
            for device in snapshot:
                self._publish_device(device)
        except Exception:
            self.data_updates.labels(status="error").inc()
            logger.exception("Error updating device metrics")
            return False

        self.data_updates.labels(status="success").inc()
        logger.info("Updated metrics for %d device(s)", len(snapshot))
        return True

    def record_failure(self) -> None:
        self.data_updates.labels(status="error").inc()

    def clear(self) -> None:
        for gauge in self.gauges:
            gauge.clear()

    def render(self) -> Tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST

    def _publish_device(self, device: ParsedDevice) -> None:
        device_labels = (device.device_id, device.device_model)
        self.device_online.labels(*device_labels).set(1 if device.is_online else 0)
        for control in device.climate_controls:
            self._publish_control(device_labels, control)

    def _publish_control(self, device_labels: Tuple[str, str], control: ClimateControlRecord) -> None:
        labels = device_labels + (control.name, control.control_id)
        mode_labels = labels + (control.mode,)

        optional_readings = (
            (self.room_temperature, labels, control.room_temperature),
            (self.room_humidity, labels, control.room_humidity),
            (self.outdoor_temperature, labels, control.outdoor_temperature),
            (self.target_temperature, mode_labels, control.target_temperature),
        )
        for gauge, label_values, value in optional_readings:
            if value is not None:
                gauge.labels(*label_values).set(value)

        self.device_power.labels(*mode_labels).set(1 if control.is_on else 0)
        self.powerful_mode.labels(*labels).set(1 if control.powerful_mode else 0)
        self.error_state.labels(*labels).set(1 if control.is_in_error_state else 0)
        self.warning_state.labels(*labels).set(1 if control.is_in_warning_state else 0)

        self.consumption_today.labels(*labels).set(control.consumption_today)
        self.consumption_week.labels(*labels).set(control.consumption_week)
        self.consumption_month.labels(*labels).set(control.consumption_month)


__all__ = ["MetricsPublisher"]
