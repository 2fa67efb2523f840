"""
Database management for the single shared database
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from config import Config
from models import Base, School
import logging

logger = logging.getLogger(__name__)

# Global engine and session factory
ENGINE = None
SessionLocal = None


def import_all_models():
    """Import every model module so Base.metadata knows all tables"""
    import models  # noqa: F401
    import teacher_models  # noqa: F401
    import student_models  # noqa: F401
    import course_models  # noqa: F401
    import leave_models  # noqa: F401
    import notification_models  # noqa: F401
    import timetable_models  # noqa: F401
    return Base.metadata


def init_database(config=None):
    """Initialize database engine and session factory"""
    global ENGINE, SessionLocal

    config = config or Config()
    database_uri = config.get_database_uri()

    if ENGINE is not None:
        ENGINE.dispose()

    ENGINE = create_engine(
        database_uri,
        **config.get_engine_options()
    )

    SessionLocal = sessionmaker(bind=ENGINE, autoflush=False, autocommit=False)

    logger.info(f"Database initialized: {ENGINE.url.render_as_string(hide_password=True)}")
    return ENGINE, SessionLocal


def create_all_tables():
    """Create every table that does not exist yet"""
    if ENGINE is None:
        init_database()
    import_all_models()
    Base.metadata.create_all(ENGINE)


def get_session():
    """Get a database session"""
    if SessionLocal is None:
        init_database()
    return SessionLocal()


def create_school(name: str, **kwargs) -> tuple[bool, str]:
    """
    Create a new school (tenant)

    Args:
        name: Full school name (e.g., 'XYZ Public School')
        **kwargs: Additional school columns (city, state, grades, created_by, ...)

    Returns:
        tuple: (success: bool, message: str)
    """
    session = get_session()
    try:
        existing = session.query(School).filter(School.name == name).first()
        if existing:
            return False, f"School '{name}' already exists"

        grades = kwargs.pop('grades', None)
        school = School(name=name, is_active=True, **kwargs)
        if grades:
            school.grades = grades

        session.add(school)
        session.commit()

        logger.info(f"✅ Created school: {name} ({school.id})")
        return True, f"School '{name}' created successfully with id {school.id}"

    except Exception as e:
        session.rollback()
        logger.error(f"❌ Failed to create school: {e}")
        return False, f"Error creating school: {str(e)}"
    finally:
        session.close()


def list_schools() -> list:
    """List all active schools as dictionaries"""
    session = get_session()
    try:
        schools = session.query(School).filter_by(is_active=True).order_by(School.name).all()
        return [s.to_dict() for s in schools]
    finally:
        session.close()
