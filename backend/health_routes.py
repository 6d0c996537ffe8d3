from fastapi import APIRouter
from pydantic import BaseModel
from typing import Optional
from datetime import datetime, timezone
from pathlib import Path
import os
import psutil
import sys
import time

import config
import server_api

router = APIRouter(prefix="/health", tags=["health"])

_STARTED_AT = time.time()


class ModsDirHealth(BaseModel):
    path: str
    exists: bool
    writable: bool
    jar_count: int
    disk_free_gb: Optional[float] = None


class ServerApiHealth(BaseModel):
    url: str
    reachable: bool


class OverallHealth(BaseModel):
    status: str  # healthy, warning
    timestamp: datetime
    version: str
    python_version: str
    uptime_seconds: float
    mods_dir: ModsDirHealth
    server_api: ServerApiHealth


def _mods_dir_health() -> ModsDirHealth:
    mods_dir = Path(config.MODS_DIR)
    exists = mods_dir.is_dir()
    disk_free_gb = None
    if exists:
        try:
            disk_free_gb = round(psutil.disk_usage(str(mods_dir)).free / (1024**3), 2)
        except OSError:
            pass
    return ModsDirHealth(
        path=str(mods_dir),
        exists=exists,
        writable=exists and _is_writable(mods_dir),
        jar_count=len(list(mods_dir.glob("*.jar"))) if exists else 0,
        disk_free_gb=disk_free_gb,
    )


def _is_writable(path: Path) -> bool:
    return os.access(path, os.W_OK)


@router.get("", response_model=OverallHealth)
def get_health():
    """Liveness plus the state of the mods folder and the game server API."""
    mods = _mods_dir_health()
    api = ServerApiHealth(url=server_api.base_url(), reachable=server_api.check_health())
    # The manager stays up when the game server is stopped; only a bad mods dir is a warning
    status = "healthy" if mods.exists and mods.writable else "warning"
    return OverallHealth(
        status=status,
        timestamp=datetime.now(timezone.utc),
        version=config.APP_VERSION,
        python_version=sys.version,
        uptime_seconds=round(time.time() - _STARTED_AT, 2),
        mods_dir=mods,
        server_api=api,
    )
