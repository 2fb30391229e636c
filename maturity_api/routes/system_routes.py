import logging

from fastapi import APIRouter, Depends
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from maturity_api.auth.dependencies import require_manager
from maturity_api.core.errors import database_errors
from maturity_api.core.scoring import DEFAULT_MATURITY_LEVELS
from maturity_api.database import Base, ensure_schema, get_db, reset_schema_checks
from maturity_api.models.assessment import AssessmentCode, MaturityLevel
from maturity_api.models.user import User

router = APIRouter(tags=['system'])

logger = logging.getLogger(__name__)


def seed_maturity_levels(db: Session) -> int:
    """Insert the default levels into an empty table. Returns rows added."""
    if db.query(MaturityLevel).count():
        return 0

    for level_number, level_name, score_min, score_max, color in DEFAULT_MATURITY_LEVELS:
        db.add(MaturityLevel(
            level_number=level_number,
            level_name=level_name,
            description_en=f'{level_name} data management maturity',
            score_range_min=score_min,
            score_range_max=score_max,
            color_code=color,
        ))
    db.commit()
    return len(DEFAULT_MATURITY_LEVELS)


@router.get('/init-db')
def database_status(db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to check database status'):
        tables = set(inspect(db.get_bind()).get_table_names())
        expected = set(Base.metadata.tables)
        code_count = db.query(AssessmentCode).count() if AssessmentCode.__tablename__ in tables else 0

    return {
        'success': True,
        'status': {
            'tables_exist': expected.issubset(tables),
            'missing_tables': sorted(expected - tables),
            'code_count': code_count,
        },
    }


@router.post('/init-db')
def initialize_database(current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    with database_errors(db, 'Database initialization failed'):
        Base.metadata.create_all(bind=db.get_bind())
        reset_schema_checks()
        ensure_schema()
        seeded = seed_maturity_levels(db)

    logger.info('%s initialized the database, seeded %d levels', current_user.username, seeded)
    return {'success': True, 'message': 'Database initialized successfully', 'seeded_levels': seeded}
