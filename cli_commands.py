"""
Flask CLI commands for the school management backend
"""

import click
from flask import Flask, current_app
from db_single import create_school, list_schools, get_session
from init_db import run_on_startup
from models import User, School, ROLE_ADMIN, ROLE_SUPER_ADMIN
from validators import validate_password
import logging

logger = logging.getLogger(__name__)


def register_cli_commands(app: Flask):
    """Register CLI commands with the Flask app"""

    @app.cli.command("setup-db")
    def setup_db_command():
        """Create database, tables, and default admin user"""
        click.echo("🚀 Setting up database...")
        if run_on_startup(current_app.config.get('APP_CONFIG')):
            click.echo("✅ Database setup completed successfully!")
        else:
            click.echo("❌ Database setup failed!")

    @app.cli.command("create-admin")
    @click.option("--email", required=True, help="Admin email")
    @click.option("--password", required=True, help="Admin password")
    @click.option("--full-name", default="Platform Admin", help="Display name")
    @click.option("--super", "is_super", is_flag=True, help="Create a super_admin instead of an admin")
    def create_admin_command(email, password, full_name, is_super):
        """Create a platform admin user"""
        errors = validate_password(password)
        if errors:
            click.echo(f"❌ {'; '.join(errors)}")
            return

        session = get_session()
        try:
            email = email.strip().lower()
            if session.query(User).filter_by(email=email).first():
                click.echo(f"❌ Email '{email}' already exists")
                return

            admin = User(
                email=email,
                full_name=full_name,
                role=ROLE_SUPER_ADMIN if is_super else ROLE_ADMIN,
                is_active=True,
            )
            admin.set_password(password)
            session.add(admin)
            session.commit()
            click.echo(f"✅ {admin.role} created: {email}")
        except Exception as e:
            session.rollback()
            click.echo(f"❌ Failed to create admin: {e}")
        finally:
            session.close()

    @app.cli.command("add-school")
    @click.option("--name", required=True, help="Full school name (e.g., 'XYZ Public School')")
    @click.option("--city", default=None, help="City")
    @click.option("--grades", default="", help="Comma separated grades, e.g. '1,2,3'")
    def add_school_command(name, city, grades):
        """Add a new school to the system"""
        from course_helpers import clean_grades, normalize_grade

        click.echo(f"🏫 Creating school: {name}")
        success, message = create_school(name, city=city, grades=[normalize_grade(g) for g in clean_grades(grades.split(','))])
        if success:
            click.echo(f"✅ {message}")
        else:
            click.echo(f"❌ {message}")

    @app.cli.command("list-schools")
    def list_schools_command():
        """List all active schools"""
        schools = list_schools()
        if not schools:
            click.echo("📭 No schools found")
            return

        click.echo("🏫 Schools in system:")
        click.echo("-" * 60)
        for school in schools:
            click.echo(f"  {school['name']}")
            click.echo(f"    ID: {school['id']}")
            click.echo(f"    Grades: {', '.join(school.get('grades_offered') or []) or '-'}")
            click.echo("-" * 60)

    @app.cli.command("generate-join-codes")
    @click.option("--school-id", required=True, help="School id")
    @click.option("--grades", required=True, help="Comma separated grades")
    @click.option("--single-use", is_flag=True, help="Each code admits one registration")
    def generate_join_codes_command(school_id, grades, single_use):
        """Generate joining codes for some grades of a school"""
        from joining_code_helpers import create_join_codes

        session = get_session()
        try:
            school = session.query(School).filter_by(id=school_id).first()
            if not school:
                click.echo(f"❌ School '{school_id}' not found")
                return

            codes, errors = create_join_codes(
                session, school, grades.split(','),
                usage_type='single' if single_use else 'multiple',
            )
            session.commit()
            for code in codes:
                click.echo(f"✅ {code.grade}: {code.code}")
            for error in errors:
                click.echo(f"⚠️  {error}")
        except Exception as e:
            session.rollback()
            click.echo(f"❌ Failed to generate codes: {e}")
        finally:
            session.close()

    @app.cli.command("clear-cache")
    def clear_cache_command():
        """Drop every cached value"""
        from cache_helpers import clear_cache, backend_name

        removed = clear_cache()
        click.echo(f"🧹 Cleared {removed} key(s) from the {backend_name()} cache")
