"""FastAPI application entry point."""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from groupwork.config import settings
from groupwork.database import Base, engine

# Import routers
from groupwork.routers import users, groups, assignments, submissions
from groupwork.jobs.reconcile_groups import start_reconcile_loop

# Import all models so Base.metadata knows about them
from groupwork.models.user import User                 # noqa: F401
from groupwork.models.group import Group               # noqa: F401
from groupwork.models.assignment import Assignment     # noqa: F401
from groupwork.models.submission import Submission     # noqa: F401
from groupwork.models.message import GroupMessage      # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Groupwork",
    description="Cohort study groups, assignment submissions and group progress",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(assignments.router, prefix="/api/assignments", tags=["Assignments"])
app.include_router(groups.router, prefix="/api/groups", tags=["Groups"])
app.include_router(submissions.router, prefix="/api/submissions", tags=["Submissions"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode) and start the membership sweep."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    if settings.RECONCILE_SWEEP_ENABLED:
        start_reconcile_loop()


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
