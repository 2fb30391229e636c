from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from maturity_api.core import config


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_checked_tables: set[str] = set()

# Columns added after the first deployments, plus the indexes the read paths rely on.
SCHEMA_REPAIRS = {
    'subdomains': {
        'columns': [
            ('name_ar', 'ALTER TABLE subdomains ADD COLUMN name_ar VARCHAR'),
            ('description_ar', 'ALTER TABLE subdomains ADD COLUMN description_ar TEXT'),
            ('display_order', 'ALTER TABLE subdomains ADD COLUMN display_order INTEGER DEFAULT 0'),
            ('lead_consultant', 'ALTER TABLE subdomains ADD COLUMN lead_consultant VARCHAR'),
        ],
        'indexes': [
            'CREATE INDEX IF NOT EXISTS idx_subdomains_lead_consultant ON subdomains(lead_consultant)',
        ],
    },
    'assessment_codes': {
        'columns': [
            ('question_list', 'ALTER TABLE assessment_codes ADD COLUMN question_list TEXT'),
            ('assessment_type', "ALTER TABLE assessment_codes ADD COLUMN assessment_type VARCHAR DEFAULT 'full'"),
            ('usage_count', 'ALTER TABLE assessment_codes ADD COLUMN usage_count INTEGER DEFAULT 0'),
        ],
        'indexes': [],
    },
    'hist_data': {
        'columns': [
            ('scope', 'ALTER TABLE hist_data ADD COLUMN scope VARCHAR'),
            ('updated_at', 'ALTER TABLE hist_data ADD COLUMN updated_at TIMESTAMP'),
        ],
        'indexes': [
            'CREATE INDEX IF NOT EXISTS idx_hist_data_consultant_day ON hist_data(consultant, year, month_no, day)',
            'CREATE INDEX IF NOT EXISTS idx_hist_data_created_at ON hist_data(created_at)',
        ],
    },
    'audit_logs': {
        'columns': [
            ('ip_address', 'ALTER TABLE audit_logs ADD COLUMN ip_address VARCHAR'),
        ],
        'indexes': [
            'CREATE INDEX IF NOT EXISTS idx_audit_logs_action_timestamp ON audit_logs(action, timestamp)',
        ],
    },
}


def ensure_table_schema(table_name: str) -> None:
    if table_name in _checked_tables:
        return

    with _schema_lock:
        if table_name in _checked_tables:
            return

        inspector = inspect(engine)

        if table_name not in inspector.get_table_names():
            _checked_tables.add(table_name)
            return

        repairs = SCHEMA_REPAIRS[table_name]
        existing_columns = {column['name'] for column in inspector.get_columns(table_name)}

        with engine.begin() as connection:
            for column_name, statement in repairs['columns']:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            for statement in repairs['indexes']:
                connection.execute(text(statement))

        _checked_tables.add(table_name)


def ensure_schema() -> None:
    for table_name in SCHEMA_REPAIRS:
        ensure_table_schema(table_name)


def reset_schema_checks() -> None:
    with _schema_lock:
        _checked_tables.clear()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
