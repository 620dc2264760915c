import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import settings
from .errors import NotConfiguredError, ServiceError
from .models import (
    AutoStopSettingsRequest,
    AutoStopStatus,
    AutoStopUpdateResponse,
    BackupActionResponse,
    BackupCreateResponse,
    BackupInfo,
    BackupRestoreRequest,
    Community,
    ContainerState,
    InstalledMod,
    InstallRequest,
    InstallResponse,
    InstallResult,
    Package,
    ServerActionResponse,
    ServerLogsResponse,
)
from .services.auto_stop import AutoStopController
from .services.backup_service import BackupService
from .services.container_runtime import ContainerRuntime
from .services.installer import InstallationOrchestrator
from .services.mod_store import ModStore
from .services.resolver import DependencyResolver
from .services.thunderstore_service import ThunderstoreError, ThunderstoreService

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("thundermodman")

thunderstore = ThunderstoreService()
mod_store = ModStore()
resolver = DependencyResolver(thunderstore)
installer = InstallationOrchestrator(thunderstore, resolver, mod_store)
runtime = ContainerRuntime()
auto_stop = AutoStopController(runtime)
backups = BackupService()


@asynccontextmanager
async def lifespan(app: FastAPI):
    auto_stop.start()
    log.info("ThunderModMan ready, mods directory: %s", mod_store.mods_dir)
    yield
    auto_stop.shutdown()


app = FastAPI(title="ThunderModMan", lifespan=lifespan)
base_dir = os.path.dirname(os.path.abspath(__file__))
static_dir = os.path.join(base_dir, "static")
if os.path.isdir(static_dir):
    app.mount("/static", StaticFiles(directory=static_dir), name="static")

    @app.get("/")
    def index() -> FileResponse:
        return FileResponse(os.path.join(static_dir, "index.html"))


@app.exception_handler(ServiceError)
def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code},
    )


@app.exception_handler(ThunderstoreError)
def thunderstore_error_handler(request: Request, exc: ThunderstoreError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": "index_unavailable"},
    )


def _managed_container() -> str:
    if not settings.restart_container:
        raise NotConfiguredError("RESTART_CONTAINER not configured")
    return settings.restart_container


@app.get("/api/communities", response_model=list[Community])
def list_communities() -> list[Community]:
    return thunderstore.list_communities()


@app.get("/api/packages/{community}", response_model=list[Package])
def list_packages(community: str) -> list[Package]:
    return thunderstore.list_packages(community)


@app.get("/api/packages/{community}/search", response_model=list[Package])
def search_packages(
    community: str,
    q: str = Query(""),
    sort: str = Query("last-updated"),
    categories: Optional[str] = Query(None),
) -> list[Package]:
    wanted = categories.split(",") if categories else []
    return thunderstore.search(community, q, sort, wanted)


@app.get("/api/installed", response_model=list[InstalledMod])
def list_installed() -> list[InstalledMod]:
    return mod_store.list_installed()


@app.post("/api/install", response_model=InstallResponse)
def install(request: InstallRequest) -> InstallResponse:
    results = installer.install(request.community, request.full_name, request.include_deps)
    return InstallResponse(results=results)


@app.delete("/api/uninstall/{full_name}", response_model=InstallResult)
def uninstall(full_name: str) -> InstallResult:
    return installer.uninstall(full_name)


@app.post("/api/start-server", response_model=ServerActionResponse)
def start_server() -> ServerActionResponse:
    name = _managed_container()
    runtime.start(name)
    return ServerActionResponse(success=True, message=f"Started {name}")


@app.post("/api/stop-server", response_model=ServerActionResponse)
def stop_server() -> ServerActionResponse:
    name = _managed_container()
    runtime.stop(name)
    return ServerActionResponse(success=True, message=f"Stopped {name}")


@app.post("/api/restart-server", response_model=ServerActionResponse)
def restart_server() -> ServerActionResponse:
    name = _managed_container()
    runtime.restart(name)
    return ServerActionResponse(success=True, message=f"Restarted {name}")


@app.get("/api/server-status", response_model=ContainerState)
def server_status() -> ContainerState:
    return runtime.inspect(_managed_container())


@app.get("/api/server-logs", response_model=ServerLogsResponse)
def server_logs(tail: int = Query(200, ge=0, le=5000)) -> ServerLogsResponse:
    return ServerLogsResponse(logs=runtime.logs(_managed_container(), tail))


@app.get("/api/settings/auto-stop", response_model=AutoStopStatus)
def get_auto_stop() -> AutoStopStatus:
    return auto_stop.get_status()


@app.post("/api/settings/auto-stop", response_model=AutoStopUpdateResponse)
def update_auto_stop(request: AutoStopSettingsRequest) -> AutoStopUpdateResponse:
    status = auto_stop.update_config(
        enabled=request.enabled, timeout_minutes=request.timeout_minutes
    )
    return AutoStopUpdateResponse(success=True, config=status)


@app.get("/api/backups", response_model=list[BackupInfo])
def list_backups() -> list[BackupInfo]:
    return backups.list_backups()


@app.post("/api/backups/create", response_model=BackupCreateResponse)
def create_backup() -> BackupCreateResponse:
    filename = backups.create_backup()
    return BackupCreateResponse(
        success=True, filename=filename, message="Backup created successfully"
    )


@app.post("/api/backups/restore", response_model=BackupActionResponse)
def restore_backup(request: BackupRestoreRequest) -> BackupActionResponse:
    backups.restore_backup(request.filename)
    return BackupActionResponse(success=True, message=f"Restored {request.filename}")


@app.delete("/api/backups/{filename}", response_model=BackupActionResponse)
def delete_backup(filename: str) -> BackupActionResponse:
    backups.delete_backup(filename)
    return BackupActionResponse(success=True, message="Backup deleted")
