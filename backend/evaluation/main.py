"""FastAPI application entrypoint and HTTP controllers.

Controllers are intentionally thin: FastAPI validates the path and body
against the request schemas, the handler delegates to a service and wraps
the result in the response envelope. Errors are not caught here; they
propagate to the handlers installed by `responses.install_error_handlers`.

Endpoints implemented:
- GET /health
- GET, POST /subjects
- GET, PUT, DELETE /subjects/{id}
- GET, POST /competencies
- GET /competencies/subject/{subject_id}
- GET, PUT, DELETE /competencies/{id}
"""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Path, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlmodel import Session

from . import schemas, services
from .config import Settings, settings as default_settings
from .database import Database, get_session
from .responses import install_error_handlers, now_iso, success
from .schemas import dump_record

logger = logging.getLogger("evaluation.api")


def _configure_logging(level: str) -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    logging.getLogger("evaluation").setLevel(level)


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the application around an explicitly constructed `Database`.

    The database is opened (and tables created) in the lifespan hook and
    closed on shutdown; sessions opened before that still work because the
    handle connects lazily.
    """
    settings = settings or default_settings
    database = database or Database(settings.DATABASE_URL, echo=settings.SQL_ECHO)
    _configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.open()
        database.create_all()
        try:
            yield
        finally:
            database.close()

    app = FastAPI(title="Evaluation System API", lifespan=lifespan)
    app.state.db = database
    app.state.settings = settings

    if settings.ALLOW_DEV_CORS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE"],
            allow_headers=["*"],
        )

    install_error_handlers(app)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
        request.state.request_id = req_id
        started = time.perf_counter()
        response: Response
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
            logger.exception(
                "request_failed %s",
                json.dumps(
                    {
                        "request_id": req_id,
                        "path": request.url.path,
                        "method": request.method,
                        "duration_ms": elapsed_ms,
                    },
                    ensure_ascii=True,
                ),
            )
            raise
        response.headers["X-Request-ID"] = req_id
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        return response

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health(request: Request):
        """Liveness probe; also reports whether the database answers."""
        db: Database = request.app.state.db
        return success(
            {
                "status": "ok",
                "service": request.app.state.settings.SERVICE_NAME,
                "database": "ok" if db.ping() else "unavailable",
                "checkedAt": now_iso(),
            },
            "Service is healthy",
        )

    # subjects

    @app.get("/subjects")
    def list_subjects(db: Session = Depends(get_session)):
        subjects = services.SubjectService(db).list_subjects()
        return success(dump_record(subjects, schemas.SubjectOut), "Subjects retrieved successfully")

    @app.get("/subjects/{subject_id}")
    def get_subject(subject_id: int = Path(gt=0, le=schemas.MAX_ID), db: Session = Depends(get_session)):
        subject = services.SubjectService(db).get_subject(subject_id)
        return success(dump_record(subject, schemas.SubjectOut), "Subject retrieved successfully")

    @app.post("/subjects", status_code=201)
    def create_subject(payload: schemas.SubjectCreate, db: Session = Depends(get_session)):
        subject = services.SubjectService(db).create_subject(payload)
        return success(dump_record(subject, schemas.SubjectOut), "Subject created successfully", 201)

    @app.put("/subjects/{subject_id}")
    def update_subject(payload: schemas.SubjectUpdate, subject_id: int = Path(gt=0, le=schemas.MAX_ID), db: Session = Depends(get_session)):
        subject = services.SubjectService(db).update_subject(subject_id, payload)
        return success(dump_record(subject, schemas.SubjectOut), "Subject updated successfully")

    @app.delete("/subjects/{subject_id}")
    def delete_subject(subject_id: int = Path(gt=0, le=schemas.MAX_ID), db: Session = Depends(get_session)):
        """Delete a subject together with all of its competencies."""
        removed = services.SubjectService(db).delete_subject(subject_id)
        logger.info("subject %s deleted, %d competencies cascaded", subject_id, removed)
        return success(None, "Subject deleted successfully")

    # competencies

    @app.get("/competencies")
    def list_competencies(db: Session = Depends(get_session)):
        competencies = services.CompetencyService(db).list_competencies()
        return success(dump_record(competencies, schemas.CompetencyOut), "Competencies retrieved successfully")

    @app.get("/competencies/subject/{subject_id}")
    def list_competencies_by_subject(subject_id: int = Path(gt=0, le=schemas.MAX_ID), db: Session = Depends(get_session)):
        """Competencies of one subject, best marks first. 404 if the subject is unknown."""
        competencies = services.CompetencyService(db).list_by_subject(subject_id)
        return success(dump_record(competencies, schemas.CompetencyOut), "Competencies retrieved successfully")

    @app.get("/competencies/{competency_id}")
    def get_competency(competency_id: int = Path(gt=0, le=schemas.MAX_ID), db: Session = Depends(get_session)):
        competency = services.CompetencyService(db).get_competency(competency_id)
        return success(dump_record(competency, schemas.CompetencyOut), "Competency retrieved successfully")

    @app.post("/competencies", status_code=201)
    def create_competency(payload: schemas.CompetencyCreate, db: Session = Depends(get_session)):
        competency = services.CompetencyService(db).create_competency(payload)
        return success(dump_record(competency, schemas.CompetencyOut), "Competency created successfully", 201)

    @app.put("/competencies/{competency_id}")
    def update_competency(
        payload: schemas.CompetencyUpdate,
        competency_id: int = Path(gt=0, le=schemas.MAX_ID),
        db: Session = Depends(get_session),
    ):
        competency = services.CompetencyService(db).update_competency(competency_id, payload)
        return success(dump_record(competency, schemas.CompetencyOut), "Competency updated successfully")

    @app.delete("/competencies/{competency_id}")
    def delete_competency(competency_id: int = Path(gt=0, le=schemas.MAX_ID), db: Session = Depends(get_session)):
        services.CompetencyService(db).delete_competency(competency_id)
        return success(None, "Competency deleted successfully")


app = create_app()
