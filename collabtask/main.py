from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException

from collabtask.api.routers import shares, task_items, tasks, teams, users
from collabtask.infra.db import check_db_ready

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(
    title="collabtask",
    description="Collaborative task management with team sharing and conflict-aware updates.",
    version="0.1.0",
)

app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])
app.include_router(teams.router, prefix="/api/teams", tags=["teams"])
app.include_router(shares.router, prefix="/api/shares", tags=["shares"])
app.include_router(task_items.router, prefix="/api", tags=["task-items"])


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, object]:
    db_ok = check_db_ready()
    checks = {"db": "ok" if db_ok else "fail"}
    if not db_ok:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
