import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session, select

from workdesk.api.auth import router as auth_router
from workdesk.api.chat import router as chat_router
from workdesk.api.doer import router as doer_router
from workdesk.api.pricing import router as pricing_router
from workdesk.api.pricing import seed_pricing_guide
from workdesk.api.projects import router as projects_router
from workdesk.api.supervisor import router as supervisor_router
from workdesk.api.users import router as users_router
from workdesk.api.ws import router as ws_router
from workdesk.auth import hash_password
from workdesk.config import settings
from workdesk.database import engine, init_db
from workdesk.errors import BackendUnavailable, WorkDeskError
from workdesk.models.user import User

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level)
    init_db()
    with Session(engine) as session:
        admin = session.exec(select(User).where(User.username == "admin")).first()
        if not admin:
            admin = User(
                username="admin",
                password_hash=hash_password("admin"),
                full_name="Administrator",
                role="admin",
            )
            session.add(admin)
            session.commit()
            logger.info("Created default admin user")
        seed_pricing_guide(session)
    yield


app = FastAPI(title="WorkDesk", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WorkDeskError)
async def workdesk_error_handler(request: Request, exc: WorkDeskError):
    headers = None
    if isinstance(exc, BackendUnavailable):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=headers,
    )


app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(projects_router, prefix="/api")
app.include_router(pricing_router, prefix="/api")
app.include_router(doer_router, prefix="/api")
app.include_router(supervisor_router, prefix="/api")
app.include_router(chat_router, prefix="/api")
app.include_router(ws_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
