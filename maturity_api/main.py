import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from maturity_api.core import config
from maturity_api.core.errors import register_error_handlers
from maturity_api.core.logging_setup import configure_logging
from maturity_api.database import Base, engine, ensure_schema
from maturity_api.models import assessment, audit_log, domain, hist_data, organization_request, user  # noqa: F401
from maturity_api.routes import (
    admin_account_routes,
    admin_console_routes,
    admin_taxonomy_routes,
    analytics_routes,
    assessment_routes,
    auth_routes,
    hours_routes,
    profile_routes,
    system_routes,
    taxonomy_routes,
    tracking_routes,
)

configure_logging()
config.validate_runtime_config()

app = FastAPI(title='Maturity Assessment API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

register_error_handlers(app)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Maturity Assessment API Running'}


app.include_router(auth_routes.router, prefix='/api/auth')
app.include_router(profile_routes.router, prefix='/api/user')
app.include_router(taxonomy_routes.router, prefix='/api')
app.include_router(hours_routes.router, prefix='/api')
app.include_router(assessment_routes.router, prefix='/api')
app.include_router(tracking_routes.router, prefix='/api')
app.include_router(system_routes.router, prefix='/api')
app.include_router(admin_account_routes.router, prefix='/api/admin')
app.include_router(admin_taxonomy_routes.router, prefix='/api/admin')
app.include_router(admin_console_routes.router, prefix='/api/admin')
app.include_router(analytics_routes.router, prefix='/api/admin/analytics')
