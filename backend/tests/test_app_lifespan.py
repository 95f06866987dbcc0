from __future__ import annotations

import asyncio

import pytest
from fastapi import FastAPI

import geotrack.main as main_module
from geotrack.core.settings import get_settings
from geotrack.services.enrichment import EnrichmentWorker


def test_engine_disposed_when_worker_task_fails(
    db,  # noqa: ARG001
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    disposed: list[bool] = []
    real_dispose = main_module.dispose_engine

    async def _record_dispose() -> None:
        disposed.append(True)
        await real_dispose()

    async def _crashing_run(self: EnrichmentWorker) -> None:  # noqa: ARG001
        raise RuntimeError("worker crashed")

    monkeypatch.setattr(main_module, "dispose_engine", _record_dispose)
    monkeypatch.setattr(EnrichmentWorker, "run", _crashing_run)

    async def _run() -> None:
        lifespan = main_module._build_lifespan(get_settings())  # noqa: SLF001
        app = FastAPI()
        async with lifespan(app):
            assert app.state.worker is not None

    with pytest.raises(RuntimeError, match="worker crashed"):
        asyncio.run(_run())

    assert disposed == [True]
