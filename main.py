"""
FastAPI Main Application.
Sync mode for simplicity and SQLite compatibility.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import router, TAGS_METADATA
from config import LOG_LEVEL
from database import init_db

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Case & Rehabilitation Progress Engine",
    description="""
## Workplace injury case and rehabilitation API

Tracks worker exceptions (injury, leave, transfer), escalated cases and
their rehabilitation plans.

### Main features

* **Exceptions**: record and edit worker exceptions; list those active on a day
* **Schedules**: create worker schedules, blocked by active exceptions
* **Cases**: status transitions with a status journal and notifications
* **Rehabilitation**: plans, exercises, daily completions and progress

### Authentication

Every API except health checks requires the `X-API-Key` header.

```
X-API-Key: your_api_key_here
```

### Roles

* **WORKER**: own rehabilitation plan and completions
* **TEAM_LEADER**: exceptions and schedules of the team they lead
* **CLINICIAN**: assigned cases and their plans
* **WHS_CONTROL_CENTER**: assigns cases to clinicians
* **ADMIN**: everything

### Design principles

* Calendar-day decisions use a single reference timezone
* Case status changes go through the status rules only
* Rehabilitation progress is computed on read, never stored
""",
    version="1.0.0",
    openapi_tags=TAGS_METADATA,
    contact={
        "name": "Case & Rehabilitation Progress Engine",
    },
    license_info={
        "name": "Internal Use Only",
    },
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routes
app.include_router(router)


@app.on_event("startup")
def on_startup():
    """Initialize database on startup."""
    init_db()


@app.get(
    "/",
    tags=["Health"],
    summary="Service status",
    description="Checks that the service is running. No authentication required.",
)
def root():
    """Health check."""
    return {"status": "ok", "service": "case-rehab-engine"}


@app.get(
    "/health",
    tags=["Health"],
    summary="Health check",
    description="Health check endpoint. No authentication required.",
)
def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    from config import HOST, PORT

    uvicorn.run("main:app", host=HOST, port=PORT)
