from services.parser import ParsedDevice, parse_devices
from services.publisher import MetricsPublisher

CONTROL = {
    "device_id": "dev-1",
    "device_model": "dx4",
    "device_name": "Living Room",
    "control_id": "climateControl",
}


def _value(publisher: MetricsPublisher, name: str, **labels: str):
    return publisher.registry.get_sample_value(name, labels)


def _label_sets(publisher: MetricsPublisher) -> set:
    found = set()
    for metric in publisher.registry.collect():
        if not metric.name.startswith("daikin_") or metric.type != "gauge":
            continue
        for sample in metric.samples:
            found.add((sample.name, tuple(sorted(sample.labels.items()))))
    return found


def test_living_room_scenario(publisher, make_device):
    assert publisher.update_devices(parse_devices([make_device()])) is True

    assert _value(publisher, "daikin_room_temperature_celsius", **CONTROL) == 29
    assert _value(publisher, "daikin_room_humidity_percent", **CONTROL) == 50
    assert _value(publisher, "daikin_outdoor_temperature_celsius", **CONTROL) == 31
    assert _value(publisher, "daikin_target_temperature_celsius", mode="cooling", **CONTROL) == 28
    assert _value(publisher, "daikin_device_power_on", mode="cooling", **CONTROL) == 1
    assert _value(publisher, "daikin_device_online", device_id="dev-1", device_model="dx4") == 1
    assert _value(publisher, "daikin_powerful_mode", **CONTROL) == 0
    assert _value(publisher, "daikin_error_state", **CONTROL) == 0
    assert _value(publisher, "daikin_warning_state", **CONTROL) == 0
    assert _value(publisher, "daikin_consumption_today_kwh", **CONTROL) == 2
    assert _value(publisher, "daikin_consumption_week_kwh", **CONTROL) == 0
    assert _value(publisher, "daikin_consumption_month_kwh", **CONTROL) == 0
    assert _value(publisher, "daikin_data_updates_total", status="success") == 1
    assert _value(publisher, "daikin_data_updates_total", status="error") == 0


def test_absent_readings_are_not_emitted(publisher, make_device, climate_point):
    del climate_point["sensoryData"]
    del climate_point["temperatureControl"]

    publisher.update_devices(parse_devices([make_device(points=[climate_point])]))

    assert _value(publisher, "daikin_room_temperature_celsius", **CONTROL) is None
    assert _value(publisher, "daikin_room_humidity_percent", **CONTROL) is None
    assert _value(publisher, "daikin_outdoor_temperature_celsius", **CONTROL) is None
    assert _value(publisher, "daikin_target_temperature_celsius", mode="cooling", **CONTROL) is None
    assert _value(publisher, "daikin_device_power_on", mode="cooling", **CONTROL) == 1


def test_offline_device_without_controls(publisher, make_device):
    publisher.update_devices(parse_devices([make_device("dev-2", model="dx23", online=False, points=[])]))

    assert _value(publisher, "daikin_device_online", device_id="dev-2", device_model="dx23") == 0
    assert all(name == "daikin_device_online" for name, _ in _label_sets(publisher))


def test_second_update_drops_vanished_devices(publisher, make_device):
    publisher.update_devices(parse_devices([make_device("dev-1"), make_device("dev-2")]))
    first = _label_sets(publisher)
    assert any(("device_id", "dev-2") in labels for _, labels in first)

    publisher.update_devices(parse_devices([make_device("dev-1")]))
    second = _label_sets(publisher)

    assert second
    assert second < first
    assert not any(("device_id", "dev-2") in labels for _, labels in second)
    assert _value(publisher, "daikin_data_updates_total", status="success") == 2


def test_mode_change_replaces_mode_labelled_series(publisher, make_device, climate_point):
    publisher.update_devices(parse_devices([make_device(points=[climate_point])]))
    climate_point["operationMode"] = {"value": "heating"}
    publisher.update_devices(parse_devices([make_device(points=[climate_point])]))

    assert _value(publisher, "daikin_target_temperature_celsius", mode="cooling", **CONTROL) is None
    assert _value(publisher, "daikin_target_temperature_celsius", mode="heating", **CONTROL) == 25
    assert _value(publisher, "daikin_device_power_on", mode="cooling", **CONTROL) is None


def test_publishing_error_is_counted_and_suppressed(publisher):
    broken = ParsedDevice(device_id="dev-1", device_model="dx4", is_online=True, climate_controls=[object()])

    assert publisher.update_devices([broken]) is False

    assert _value(publisher, "daikin_data_updates_total", status="error") == 1
    assert _value(publisher, "daikin_data_updates_total", status="success") == 0


def test_record_failure_increments_error_counter(publisher):
    publisher.record_failure()
    publisher.record_failure()

    assert _value(publisher, "daikin_data_updates_total", status="error") == 2


def test_render_uses_text_exposition(publisher, make_device):
    publisher.update_devices(parse_devices([make_device()]))

    body, content_type = publisher.render()
    text = body.decode("utf-8")
    assert content_type.startswith("text/plain")
    assert "# TYPE daikin_room_temperature_celsius gauge" in text
    assert 'daikin_data_updates_total{status="success"} 1.0' in text


def test_runtime_collectors_are_opt_in():
    bare = MetricsPublisher()
    with_runtime = MetricsPublisher(collect_runtime_metrics=True)

    bare_names = {metric.name for metric in bare.registry.collect()}
    runtime_names = {metric.name for metric in with_runtime.registry.collect()}
    assert "python_info" not in bare_names
    assert "python_info" in runtime_names


def test_counter_exposes_no_created_series(publisher):
    publisher.record_failure()

    body, _ = publisher.render()
    text = body.decode("utf-8")
    assert "daikin_data_updates_total" in text
    assert "_created" not in text
