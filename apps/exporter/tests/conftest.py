import copy
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from fastapi.testclient import TestClient  # noqa: E402

from config import settings  # noqa: E402
from main import create_app  # noqa: E402
from services.cache import DeviceDataCache  # noqa: E402
from services.publisher import MetricsPublisher  # noqa: E402


LIVING_ROOM_POINT: Dict[str, Any] = {
    "embeddedId": "climateControl",
    "managementPointType": "climateControl",
    "name": {"value": "Living Room"},
    "onOffMode": {"value": "on"},
    "operationMode": {"value": "cooling"},
    "powerfulMode": {"value": "off"},
    "sensoryData": {
        "value": {
            "roomTemperature": {"value": 29, "unit": "°C"},
            "roomHumidity": {"value": 50, "unit": "%"},
            "outdoorTemperature": {"value": 31, "unit": "°C"},
        }
    },
    "temperatureControl": {
        "value": {
            "operationModes": {
                "cooling": {"setpoints": {"roomTemperature": {"value": 28, "unit": "°C"}}},
                "heating": {"setpoints": {"roomTemperature": {"value": 25, "unit": "°C"}}},
                "auto": {"setpoints": {"roomTemperature": {"value": 25, "unit": "°C"}}},
            }
        }
    },
    "fanControl": {
        "value": {
            "operationModes": {
                "cooling": {
                    "fanSpeed": {"currentMode": {"value": "auto"}},
                    "fanDirection": {
                        "horizontal": {"currentMode": {"value": "swing"}},
                        "vertical": {"currentMode": {"value": "windNice"}},
                    },
                }
            }
        }
    },
    "consumptionData": {
        "value": {
            "electrical": {
                "unit": "kWh",
                "heating": {"d": [0] * 24, "w": [0] * 14, "m": [0] * 24},
                "cooling": {"d": [1, 1], "w": [], "m": []},
            }
        }
    },
    "isInErrorState": {"value": False},
    "isInWarningState": {"value": False},
    "isInCautionState": {"value": False},
}


def build_device(
    device_id: str = "dev-1",
    *,
    model: str = "dx4",
    online: bool = True,
    points: List[Dict[str, Any]] | None = None,
) -> Dict[str, Any]:
    if points is None:
        points = [{"embeddedId": "gateway", "managementPointType": "gateway"}, copy.deepcopy(LIVING_ROOM_POINT)]
    return {
        "_id": device_id,
        "deviceModel": model,
        "isCloudConnectionUp": {"value": online},
        "timestamp": "2025-07-01T12:00:00.000Z",
        "managementPoints": points,
    }


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_device() -> Callable[..., Dict[str, Any]]:
    return build_device


@pytest.fixture
def climate_point() -> Dict[str, Any]:
    return copy.deepcopy(LIVING_ROOM_POINT)


@pytest.fixture
def settings_override() -> Callable[..., None]:
    original: Dict[str, Any] = {}

    def _apply(**overrides: Any) -> None:
        for key, value in overrides.items():
            if key not in original:
                original[key] = getattr(settings, key)
            setattr(settings, key, value)

    yield _apply

    for key, value in original.items():
        setattr(settings, key, value)


@pytest.fixture
def disable_poller(settings_override: Callable[..., None]) -> None:
    settings_override(poller_enabled=False, collect_runtime_metrics=False)
    yield


@pytest.fixture
def publisher() -> MetricsPublisher:
    return MetricsPublisher()


@pytest.fixture
def cache(tmp_path: Path) -> DeviceDataCache:
    return DeviceDataCache(tmp_path / "daikin-cache.json")


@pytest.fixture
def device_source_calls() -> List[int]:
    return []


@pytest.fixture
def client(
    disable_poller: None,
    cache: DeviceDataCache,
    publisher: MetricsPublisher,
    device_source_calls: List[int],
) -> TestClient:
    async def _source() -> List[Dict[str, Any]]:
        device_source_calls.append(1)
        return [build_device()]

    app = create_app(device_source=_source, publisher=publisher, cache=cache)
    with TestClient(app) as test_client:
        yield test_client
