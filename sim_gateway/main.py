"""FastAPI application and routes."""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Annotated, AsyncIterator

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from sim_gateway.config import Settings, settings as default_settings
from sim_gateway.constants import KNOWN_CHANNELS
from sim_gateway.crypto import AesConfig
from sim_gateway.db import Store
from sim_gateway.errors import DecodeError, DecryptionError, ValidationError
from sim_gateway.repositories import device as device_repo
from sim_gateway.repositories import push_config as push_config_repo
from sim_gateway.repositories import sim_card as sim_card_repo
from sim_gateway.schemas import (
    DeviceResponse,
    PushConfigResponse,
    PushConfigUpdate,
    PushResponse,
    SimConfigUpdate,
    TelemetryEvent,
)
from sim_gateway.services.decoder import Source, decode, parse_json_body
from sim_gateway.services.notifier import Dispatcher, NotificationQueue
from sim_gateway.services.reconciler import MessageHandler
from sim_gateway.services.sweeper import OfflineSweeper, purge_messages

logger = logging.getLogger(__name__)


async def _rejected_handler(request: Request, exc: Exception):
    logger.warning("Rejected push %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"code": -1, "message": str(exc)})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    aes = AesConfig.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = await Store(settings.database_path).open()
        await purge_messages(store, settings.log_retention_days)
        dispatcher = Dispatcher(store, timeout=settings.notify_timeout_seconds)
        queue = NotificationQueue(dispatcher, maxsize=settings.notify_queue_size)
        queue.start()
        sweeper = OfflineSweeper(
            store,
            timeout_seconds=settings.offline_timeout_seconds,
            interval_seconds=settings.offline_sweep_interval_seconds,
        )
        tasks = [
            asyncio.create_task(sweeper.run()),
            asyncio.create_task(
                store.run_snapshots(
                    settings.snapshot_interval_seconds,
                    before_save=lambda: purge_messages(store, settings.log_retention_days),
                )
            ),
        ]
        app.state.store = store
        app.state.notifications = queue
        app.state.handler = MessageHandler(store, queue, log_raw_messages=settings.log_raw_messages)
        logger.info("SIM gateway started, database image at %s", settings.database_path)
        try:
            yield
        finally:
            for task in tasks:
                task.cancel()
            for task in tasks:
                with suppress(asyncio.CancelledError):
                    await task
            await queue.stop()
            await store.close()
            logger.info("SIM gateway stopped")

    app = FastAPI(title="SIM Gateway", description="Cellular IoT gateway telemetry service", lifespan=lifespan)
    app.state.aes = aes
    for exc_type in (DecodeError, DecryptionError, ValidationError):
        app.add_exception_handler(exc_type, _rejected_handler)
    _register_routes(app)
    return app


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.store.session() as session:
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def _ingest(request: Request, payload: dict, source: Source) -> JSONResponse | PushResponse:
    event: TelemetryEvent = decode(payload, source, request.app.state.aes)
    result = await request.app.state.handler.handle_message(event)
    if not result.success:
        return JSONResponse(status_code=500, content={"code": -1, "message": result.error or "storage error"})
    return PushResponse()


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/push", response_model=PushResponse)
    async def push_json(request: Request):
        """Gateway push, application/json."""
        payload = parse_json_body(await request.body())
        return await _ingest(request, payload, "json")

    @app.post("/push-form", response_model=PushResponse)
    async def push_form(request: Request):
        """Gateway push, application/x-www-form-urlencoded."""
        form = await request.form()
        payload = {k: v for k, v in form.items() if isinstance(v, str)}
        return await _ingest(request, payload, "form")

    @app.get("/push", response_model=PushResponse)
    async def push_query(request: Request):
        """Gateway push via GET query string."""
        return await _ingest(request, dict(request.query_params), "query")

    @app.get("/devices", response_model=list[DeviceResponse])
    async def list_devices(session: SessionDep, status: str | None = Query(None, pattern="^(online|offline)$")):
        devices = await device_repo.list_all(session, status=status)
        return [DeviceResponse.model_validate(d) for d in devices]

    @app.delete("/devices/{dev_id}", status_code=204)
    async def delete_device(session: SessionDep, dev_id: str):
        device = await device_repo.get_by_dev_id(session, dev_id)
        if not device:
            raise HTTPException(status_code=404, detail="Device not found")
        await device_repo.delete(session, device)

    @app.post("/devices/{dev_id}/sim-config")
    async def set_sim_config(session: SessionDep, dev_id: str, body: SimConfigUpdate):
        """Set the timezone of a SIM slot; the slot must have reported at least once."""
        sim = await sim_card_repo.set_timezone(session, dev_id, body.slot, body.timezone)
        if not sim:
            raise HTTPException(status_code=404, detail="SIM slot not found, wait for the device to report it")
        return {"success": True}

    @app.get("/push-config", response_model=list[PushConfigResponse])
    async def list_push_config(session: SessionDep):
        configs = await push_config_repo.list_all(session)
        return [PushConfigResponse.model_validate(c) for c in configs]

    @app.put("/push-config/{channel}", response_model=PushConfigResponse)
    async def save_push_config(session: SessionDep, channel: str, body: PushConfigUpdate):
        if channel not in KNOWN_CHANNELS:
            raise HTTPException(status_code=404, detail="Unknown channel")
        config = await push_config_repo.save(session, channel, body.enabled, body.config, list(body.events))
        return PushConfigResponse.model_validate(config)


app = create_app()


def run() -> None:
    import uvicorn

    logging.basicConfig(
        level=default_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=default_settings.api_port)


if __name__ == "__main__":
    run()
