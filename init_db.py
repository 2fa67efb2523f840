"""
Database Initialization and Integrity Checker
Runs on every startup to ensure the database, its tables and the seed admin exist
"""

import sys
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.engine.url import make_url
from datetime import datetime
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from models import Base, User, ADMIN_ROLES, ROLE_SUPER_ADMIN


def get_database_url(config=None):
    """Database URL from the given config object (DATABASE_URL or DB_* variables)"""
    from config import Config

    config = config or Config()
    return config.get_database_uri()


def masked_url(db_url):
    try:
        return make_url(db_url).render_as_string(hide_password=True)
    except Exception:
        return db_url


def create_database_if_not_exists(db_url):
    """Create the MySQL schema when the server is reachable but the database is missing"""
    if not db_url.startswith('mysql'):
        return

    url_obj = make_url(db_url)
    db_name = url_obj.database
    temp_engine = create_engine(url_obj.set(database=None))
    try:
        with temp_engine.connect() as conn:
            conn.execution_options(isolation_level="AUTOCOMMIT")
            conn.execute(text(f'CREATE DATABASE IF NOT EXISTS `{db_name}` CHARACTER SET utf8mb4'))
            print(f"Database ready: {db_name}")
    except OperationalError as e:
        print(f"Warning: Could not create database: {e}")
    finally:
        temp_engine.dispose()


def get_existing_tables(engine):
    """Get list of existing tables in database"""
    inspector = inspect(engine)
    return set(inspector.get_table_names())


def get_expected_tables():
    """Get list of all expected tables from models"""
    from db_single import import_all_models

    return set(import_all_models().tables.keys())


def create_missing_tables(engine, existing_tables, expected_tables, verbose=True):
    """Create any missing tables in foreign-key order"""
    missing_tables = expected_tables - existing_tables

    if not missing_tables:
        if verbose:
            print(" All tables exist")
        return []

    if verbose:
        print(f"\n Found {len(missing_tables)} missing tables:")
        for table in sorted(missing_tables):
            print(f"  - {table}")

    # Creating through metadata resolves the users <-> schools cycle with ALTER
    Base.metadata.create_all(engine, tables=[Base.metadata.tables[name] for name in missing_tables])

    created = sorted(missing_tables & get_existing_tables(engine))
    if verbose:
        print(f"\n Successfully created {len(created)} tables")
    return created


def get_column_type_sql(column, dialect_name):
    """SQL type for an ALTER TABLE ADD COLUMN on the given dialect"""
    type_str = str(column.type).split('(')[0].upper()

    if dialect_name == 'mysql':
        if type_str == 'VARCHAR':
            length = getattr(column.type, 'length', None) or 255
            return f'VARCHAR({length})'
        mapping = {
            'INTEGER': 'INT',
            'TEXT': 'TEXT',
            'BOOLEAN': 'TINYINT(1)',
            'DATETIME': 'DATETIME',
            'DATE': 'DATE',
            'FLOAT': 'FLOAT',
        }
        if 'ENUM' in type_str:
            return 'VARCHAR(50)'
        return mapping.get(type_str, 'TEXT')

    if dialect_name == 'sqlite':
        mapping = {
            'INTEGER': 'INTEGER',
            'BOOLEAN': 'INTEGER',
            'DATETIME': 'DATETIME',
            'DATE': 'DATE',
            'FLOAT': 'REAL',
        }
        return mapping.get(type_str, 'TEXT')

    return str(column.type)


def add_missing_columns(engine, verbose=True):
    """Add columns that exist on the models but not yet in the database"""
    inspector = inspect(engine)
    dialect_name = engine.dialect.name
    existing_tables = set(inspector.get_table_names())
    added_columns = []
    failed_columns = []

    for table_name, table in Base.metadata.tables.items():
        if table_name not in existing_tables:
            continue

        existing_columns = {col['name'] for col in inspector.get_columns(table_name)}
        for column in table.columns:
            if column.name in existing_columns:
                continue

            default_clause = ''
            default = column.default.arg if column.default is not None and hasattr(column.default, 'arg') else None
            if isinstance(default, bool):
                default_clause = f" DEFAULT {1 if default else 0}"
            elif isinstance(default, (int, float)):
                default_clause = f" DEFAULT {default}"
            elif isinstance(default, str):
                default_clause = f" DEFAULT '{default}'"

            # New columns are always added as nullable
            alter_sql = (f"ALTER TABLE {table_name} ADD COLUMN {column.name} "
                         f"{get_column_type_sql(column, dialect_name)}{default_clause}")
            try:
                with engine.begin() as conn:
                    conn.execute(text(alter_sql))
                added_columns.append(f"{table_name}.{column.name}")
                if verbose:
                    print(f"   ✓ Added column: {table_name}.{column.name}")
            except OperationalError as e:
                if 'duplicate column' in str(e).lower():
                    continue
                failed_columns.append(f"{table_name}.{column.name}: {str(e)[:80]}")
                print(f"   ✗ {table_name}.{column.name}: {str(e)[:80]}")

    return added_columns, failed_columns


def create_default_admin_user(session_factory, email, password, verbose=True):
    """Create the platform super admin when no admin account exists"""
    session = session_factory()
    try:
        if session.query(User).filter(User.role.in_(ADMIN_ROLES)).count() > 0:
            return False

        admin = User(
            email=email.lower(),
            full_name='Platform Admin',
            role=ROLE_SUPER_ADMIN,
            is_active=True,
        )
        admin.set_password(password)
        session.add(admin)
        session.commit()

        if verbose:
            print("\nCreated default admin user:")
            print(f"  Email: {admin.email}")
            print("  IMPORTANT: Change this password immediately in production!")
        return True
    except Exception as e:
        session.rollback()
        print(f"Warning: Could not create default admin user: {e}")
        return False
    finally:
        session.close()


def initialize_database(config=None, verbose=True):
    """
    Verify the database against the models and repair what is missing

    Uses the engine set up by db_single.init_database so that every caller
    (app, CLI, tests) works on the same connection pool.

    Returns: (success: bool, created_tables: list, issues: dict)
    """
    import db_single
    from config import Config

    config = config or Config()
    if verbose:
        print("\n" + "=" * 60)
        print("DATABASE INITIALIZATION & INTEGRITY CHECK")
        print("=" * 60)
        print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    try:
        db_url = get_database_url(config)
        if verbose:
            print(f"\nDatabase URL: {masked_url(db_url)}")

        create_database_if_not_exists(db_url)
        if db_single.ENGINE is None:
            db_single.init_database(config)
        engine = db_single.ENGINE

        try:
            with engine.connect() as conn:
                conn.execute(text('SELECT 1'))
        except OperationalError as e:
            print(f" Database connection failed: {e}")
            return False, [], {'error': str(e)}

        existing_tables = get_existing_tables(engine)
        expected_tables = get_expected_tables()
        if verbose:
            print(f"\nExisting tables: {len(existing_tables)}")
            print(f"Expected tables: {len(expected_tables)}")

        created_tables = create_missing_tables(engine, existing_tables, expected_tables, verbose=verbose)
        added_columns, failed_columns = add_missing_columns(engine, verbose=verbose)

        create_default_admin_user(
            db_single.SessionLocal,
            getattr(config, 'DEFAULT_ADMIN_EMAIL', 'admin@school.com'),
            getattr(config, 'DEFAULT_ADMIN_PASSWORD', 'Admin@12345'),
            verbose=verbose,
        )

        if verbose:
            print("\n" + "=" * 60)
            if created_tables or added_columns:
                print("[OK] Database initialization completed")
                if created_tables:
                    print(f"    - Created {len(created_tables)} new tables")
                if added_columns:
                    print(f"    - Added {len(added_columns)} missing columns")
            elif failed_columns:
                print("[WARNING] Database verified with some warnings")
            else:
                print("[OK] Database integrity verified - all structures match models")
            print("=" * 60 + "\n")

        return True, created_tables, {'added_columns': added_columns, 'failed_columns': failed_columns}

    except Exception as e:
        print(f"\n[ERROR] Database initialization failed: {e}")
        return False, [], {'error': str(e)}


def run_on_startup(config=None, verbose=True):
    """Wrapper function to run on application startup"""
    success, _, _ = initialize_database(config, verbose=verbose)

    if not success:
        print("\n[WARNING] Database initialization failed!")
        print("The application may not work correctly.")
        print("Please check the database configuration and try again.\n")
        return False

    return True


if __name__ == '__main__':
    success = run_on_startup()
    sys.exit(0 if success else 1)
