from __future__ import annotations

import json

import numpy as np
from fastapi.testclient import TestClient

from vitals.service import make_app

_TABLE = {
    "rates": [
        {"sex": "male", "age_from": 18, "age_to": 39, "confidence": "five_percents", "low": 50, "high": 70}
    ]
}


def _samples(n: int, f0: float = 1.25, fps: float = 30.0) -> list[dict]:
    rng = np.random.RandomState(0)
    out = []
    for i in range(n):
        t = i * 1000.0 / fps
        s = np.sin(2 * np.pi * f0 * t / 1000.0)
        out.append(
            {
                "red": float(120 + 0.5 * s) * 100,
                "green": float(100 + s + 0.05 * rng.randn()) * 100,
                "blue": float(80 + 0.3 * s) * 100,
                "area": 100,
                "t": t,
            }
        )
    return out


def test_ingest_and_compute_heart() -> None:
    client = TestClient(make_app())
    r = client.post("/ingest", json={"samples": _samples(221)})
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "count": 221}

    r = client.post("/compute/heart")
    body = r.json()
    assert body["status"] == "ok"
    assert body["result"]["reliable"] is True
    assert abs(body["result"]["frequency"] - 1.25) <= 30.0 / 221

    metrics = client.get("/metrics").json()
    assert metrics["HeartRateUpdate"]["event"] == "HeartRateUpdate"
    assert client.post("/compute/unknown").json()["status"] == "unknown"


def test_compute_before_data_returns_none() -> None:
    client = TestClient(make_app())
    assert client.post("/ingest", json={"samples": []}).json() == {"status": "empty"}
    assert client.post("/compute/heart").json() == {"status": "ok", "result": None}
    assert client.post("/compute/spo2").json() == {"status": "ok", "result": None}


def test_control_updates_and_validation() -> None:
    client = TestClient(make_app())
    r = client.post("/control", json={"color_channel": "red", "pruning": False, "breath_strobe": 4})
    params = r.json()["params"]
    assert params["color_channel"] == "red"
    assert params["pruning"] is False
    assert params["breath_strobe"] == 4
    r = client.post("/control", json={"pulse_interval": 90, "estimation_interval": 30})
    params = r.json()["params"]
    assert (params["pulse_interval"], params["estimation_interval"]) == (90, 30)
    assert client.post("/control", json={"pulse_interval": 0}).status_code == 422
    assert client.post("/control", json={"estimation_interval": 0}).status_code == 422
    assert client.post("/control", json={"color_channel": "ultraviolet"}).status_code == 422
    # accepted by the schema but larger than the heart history
    r = client.post("/control", json={"estimation_interval": 500})
    assert r.json()["status"] == "error"


def test_warning_rates_reads_only_from_tables_dir(tmp_path) -> None:
    tables = tmp_path / "tables"
    tables.mkdir()
    (tables / "rates.json").write_text(json.dumps(_TABLE))
    (tmp_path / "secret.json").write_text(json.dumps(_TABLE))
    client = TestClient(make_app(tables_dir=tables))

    def post(name: str):
        return client.post("/warning-rates", json={"name": name, "sex": "male", "age": 30})

    assert post("rates.json").json() == {"status": "success", "code": 0}
    assert post("none.json").json() == {"status": "file_existence_error", "code": 2}
    # names that leave the directory are refused before touching the disk
    for name in ("../secret.json", "../none.json", str(tmp_path / "secret.json"), "..", "sub/rates.json"):
        r = post(name)
        assert r.status_code == 400, name
        assert "status" not in r.json()
    assert client.post("/warning-rates", json={"path": "rates.json", "sex": "male", "age": 30}).status_code == 422


def test_warning_rates_disabled_without_tables_dir() -> None:
    client = TestClient(make_app())
    r = client.post("/warning-rates", json={"name": "rates.json", "sex": "male", "age": 30})
    assert r.status_code == 404
