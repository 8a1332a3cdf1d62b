"""FastAPI service exposing one processor over HTTP and WebSocket.

The browser (or any producer) POSTs per-frame colour sums to `/ingest`; a
background loop recomputes heart rate, breath rate and SpO2 on a fixed
cadence and pushes every emitted event to `/ws` clients as JSON. The
processor itself is transport-agnostic; this module is one adapter.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from .events import Event
from .pca import ColorChannel
from .processor import HarmonicProcessor, ProcessorConfig
from .ranges import ConfidenceLevel, Sex

logger = logging.getLogger(__name__)


@dataclass
class State:
    processor: HarmonicProcessor
    outbox: Deque[dict]
    metrics: dict
    period_s: float = 0.5


class ControlModel(BaseModel):
    color_channel: Optional[ColorChannel] = None
    pca: Optional[bool] = None
    pruning: Optional[bool] = None
    snr_control: Optional[bool] = None
    estimation_interval: Optional[int] = Field(None, ge=1, le=1024)
    pulse_interval: Optional[int] = Field(None, ge=1, le=4096)
    breath_strobe: Optional[int] = Field(None, ge=1, le=30)
    breath_average: Optional[int] = Field(None, ge=1, le=256)
    breath_cn_interval: Optional[int] = Field(None, ge=1, le=1024)
    instance_id: Optional[int] = Field(None, ge=0)
    period_s: Optional[float] = Field(None, ge=0.05, le=10.0)


class SampleModel(BaseModel):
    red: float = Field(ge=0)
    green: float = Field(ge=0)
    blue: float = Field(ge=0)
    area: float = Field(ge=0)
    t: float  # ms


class IngestModel(BaseModel):
    samples: list[SampleModel]


class WarningRatesModel(BaseModel):
    name: str = Field(min_length=1)  # file inside the tables directory
    sex: Sex
    age: int = Field(ge=0, le=150)
    confidence: ConfidenceLevel = ConfidenceLevel.FIVE_PERCENTS


_SETTERS = {
    "color_channel": "switch_color_mode",
    "pca": "set_pca_mode",
    "pruning": "set_pruning",
    "snr_control": "set_snr_control",
    "estimation_interval": "set_estimation_interval",
    "pulse_interval": "set_pulse_interval",
    "breath_strobe": "set_breath_strobe",
    "breath_average": "set_breath_average",
    "breath_cn_interval": "set_breath_cn_interval",
    "instance_id": "set_id",
}


def make_app(
    config: Optional[ProcessorConfig] = None, tables_dir: Optional[Path] = None
) -> FastAPI:
    """Build the app around one processor.

    Warning-range tables are only read from ``tables_dir``; without it the
    `/warning-rates` endpoint answers 404.
    """
    app = FastAPI(title="Vitals Service", version="0.1.0")

    state = State(
        processor=HarmonicProcessor(config),
        outbox=deque(maxlen=1024),
        metrics={"status": "init"},
    )

    def on_event(ev: Event) -> None:
        name = ev.kind_name
        # per-frame scalars would flood the websocket
        if name in ("ScalarUpdate", "CurrentValues"):
            return
        d = ev.to_dict()
        state.outbox.append(d)
        if name in ("HeartRateUpdate", "BreathRateUpdate", "Spo2Update", "PulseRateUpdate", "TooNoisy", "RangeWarning"):
            state.metrics[name] = d

    state.processor.events.subscribe(on_event)

    loop_task: Optional[asyncio.Task] = None
    lock = asyncio.Lock()
    ws_clients: set[WebSocket] = set()

    @app.on_event("startup")
    async def _startup() -> None:  # pragma: no cover - integration
        nonlocal loop_task
        loop_task = asyncio.create_task(process_loop())

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - integration
        nonlocal loop_task
        if loop_task:
            loop_task.cancel()
            try:
                await loop_task
            except asyncio.CancelledError:
                pass
        state.processor.close()

    async def process_loop() -> None:  # pragma: no cover - integration
        while True:
            try:
                await asyncio.sleep(state.period_s)
                async with lock:
                    compute_once()
                    pending = list(state.outbox)
                    state.outbox.clear()
                if ws_clients and pending:
                    dead: list[WebSocket] = []
                    for w in ws_clients:
                        try:
                            for d in pending:
                                await w.send_text(json.dumps(d))
                        except Exception:
                            dead.append(w)
                    for w in dead:
                        ws_clients.discard(w)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("processing loop iteration failed")
                await asyncio.sleep(0.5)

    def compute_once() -> None:
        p = state.processor
        p.compute_heart_rate()
        p.compute_breath_rate()
        p.compute_spo2()
        p.count_frequency()
        state.metrics["status"] = p.state.value

    @app.get("/health")
    async def health() -> dict[str, str]:  # pragma: no cover - trivial
        return {"status": "ok"}

    @app.get("/metrics")
    async def get_metrics() -> dict:
        async with lock:
            return dict(state.metrics)

    @app.post("/control")
    async def post_control(cfg: ControlModel) -> dict:
        async with lock:
            p = state.processor
            data = cfg.model_dump(exclude_none=True)
            for k, v in data.items():
                if k == "period_s":
                    state.period_s = float(v)
                else:
                    try:
                        getattr(p, _SETTERS[k])(v)
                    except ValueError as e:
                        return {"status": "error", "field": k, "detail": str(e)}
            c = p.config
            return {
                "status": "ok",
                "params": {
                    "color_channel": c.color_channel.value,
                    "pca": c.pca,
                    "pruning": c.pruning,
                    "snr_control": c.snr_control,
                    "estimation_interval": c.estimation_interval,
                    "pulse_interval": c.pulse_interval,
                    "breath_strobe": c.breath_strobe,
                    "breath_average": c.breath_average,
                    "breath_cn_interval": c.breath_cn_interval,
                    "instance_id": c.instance_id,
                    "period_s": state.period_s,
                },
            }

    @app.post("/ingest")
    async def post_ingest(payload: IngestModel) -> dict:
        if not payload.samples:
            return {"status": "empty"}
        async with lock:
            for s in payload.samples:
                state.processor.ingest(s.red, s.green, s.blue, s.area, s.t)
        return {"status": "ok", "count": len(payload.samples)}

    @app.post("/compute/{what}")
    async def post_compute(what: str) -> dict:
        async with lock:
            p = state.processor
            if what == "heart":
                r = p.compute_heart_rate()
                out = None if r is None else {"frequency": r.frequency, "snr": r.snr, "reliable": r.reliable}
            elif what == "breath":
                r = p.compute_breath_rate()
                out = None if r is None else {"frequency": r.frequency, "snr": r.snr, "reliable": r.reliable}
            elif what == "spo2":
                out = p.compute_spo2()
            elif what == "pulse":
                out = p.count_frequency()
            else:
                return {"status": "unknown", "what": what}
            return {"status": "ok", "result": out}

    def table_path(name: str) -> Path:
        if tables_dir is None:
            raise HTTPException(status_code=404, detail="warning tables are not configured")
        root = Path(tables_dir).resolve()
        path = (root / name).resolve()
        if Path(name).name != name or path.parent != root:
            raise HTTPException(status_code=400, detail="invalid table name")
        return path

    @app.post("/warning-rates")
    async def post_warning_rates(req: WarningRatesModel) -> dict:
        path = table_path(req.name)
        async with lock:
            status = state.processor.load_warning_rates(path, req.sex, req.age, req.confidence)
        return {"status": status.name.lower(), "code": int(status)}

    @app.websocket("/ws")
    async def ws_events(ws: WebSocket) -> None:  # pragma: no cover - integration
        await ws.accept()
        ws_clients.add(ws)
        try:
            while True:
                # keep alive; events are pushed from the loop
                await asyncio.sleep(30)
        except WebSocketDisconnect:
            ws_clients.discard(ws)
        except Exception:
            ws_clients.discard(ws)

    app.state.vitals = state
    return app


def main() -> None:  # pragma: no cover - manual run helper
    import uvicorn

    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=[
            logging.FileHandler(logs_dir / "service.log", encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    tables = os.environ.get("VITALS_TABLES_DIR")
    uvicorn.run(make_app(tables_dir=Path(tables) if tables else None), host="127.0.0.1", port=8000)


if __name__ == "__main__":  # pragma: no cover
    main()
