from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Dict, Optional
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from .errors import (
    AuthError, ConnectionClosed, LauncherError, ProtocolError, ResponseTimeout,
    ValidationError,
)
from .orchestrator import Orchestrator
from .server import Server
from .settings import Settings

class ActionResult(BaseModel):
    ok: bool
    detail: str | None = None
    data: dict | None = None

class CommandRequest(BaseModel):
    command: str

class PropertiesUpdate(BaseModel):
    properties: Dict[str, str]


def _http_error(e: LauncherError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ResponseTimeout):
        return HTTPException(status_code=504, detail=str(e))
    if isinstance(e, (AuthError, ConnectionClosed, ProtocolError)):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def create_app(settings: Settings, server: Optional[Server] = None) -> FastAPI:
    orch = Orchestrator(settings, server=server)
    orch.prepare_environment()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await orch.shutdown()

    app = FastAPI(title="Minecraft Launcher API", version="0.1.0", lifespan=lifespan)
    app.state.orchestrator = orch

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/status", response_model=ActionResult)
    def status():
        return ActionResult(ok=True, data=orch.status())

    @app.post("/start", response_model=ActionResult)
    async def start():
        try:
            await orch.server.start()
        except LauncherError as e:
            raise _http_error(e)
        return ActionResult(ok=True, detail="starting", data=orch.status())

    @app.post("/stop", response_model=ActionResult)
    async def stop():
        rc = await orch.server.stop(timeout=settings.stop_timeout)
        return ActionResult(ok=True, detail="stopped", data={"exit_code": rc})

    @app.post("/kill", response_model=ActionResult)
    async def kill():
        rc = await orch.server.kill()
        return ActionResult(ok=True, detail="killed", data={"exit_code": rc})

    @app.post("/restart", response_model=ActionResult)
    async def restart():
        try:
            await orch.server.restart(stop_timeout=settings.stop_timeout)
        except LauncherError as e:
            raise _http_error(e)
        return ActionResult(ok=True, detail="restarting", data=orch.status())

    @app.post("/command", response_model=ActionResult)
    def command(req: CommandRequest):
        if not orch.server.write_line(req.command):
            raise HTTPException(status_code=409, detail=f"server is {orch.server.state.value}")
        return ActionResult(ok=True, detail="sent")

    @app.get("/players", response_model=ActionResult)
    async def players():
        try:
            names = await orch.server.get_players()
        except LauncherError as e:
            raise _http_error(e)
        return ActionResult(ok=True, data={"players": names, "tracked": sorted(orch.server.players)})

    @app.post("/rcon", response_model=ActionResult)
    async def rcon(req: CommandRequest):
        try:
            client = orch.server.rcon
            if client is None or not client.connected:
                client = await orch.server.connect_rcon()
            body = await client.send(req.command)
        except LauncherError as e:
            raise _http_error(e)
        return ActionResult(ok=True, data={"response": body})

    @app.get("/properties", response_model=ActionResult)
    def get_properties():
        return ActionResult(ok=True, data=orch.server.load_properties())

    @app.put("/properties", response_model=ActionResult)
    def put_properties(update: PropertiesUpdate):
        orch.server.load_properties()
        for key, value in update.properties.items():
            orch.server.set_property(key, value)
        orch.server.save_properties()
        return ActionResult(ok=True, detail="saved", data=dict(orch.server.properties))

    @app.post("/eula", response_model=ActionResult)
    def eula():
        orch.server.accept_eula()
        return ActionResult(ok=True, detail="accepted")

    return app
