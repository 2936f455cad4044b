#!/usr/bin/env python3
"""
Management commands for Column Rules.

Usage:
    python manage.py init_db
    python manage.py check_db
    python manage.py reset_db
    python manage.py create_admin <username> <password>
    python manage.py tick
    python manage.py deliver
"""

import sys
from sqlalchemy import inspect
from sqlmodel import SQLModel, Session
from database import engine, get_session
from settings import logger
from models.auth import User, UserRole
# Import all models to ensure tables are created
import models  # noqa: F401
from apis.auth import hash_password
from outbound.message_sender import MessageSender
from rules.scheduler import PeriodicActionScheduler


def init_db():
    """Initialize database tables."""
    logger.info("Creating database tables...")
    SQLModel.metadata.create_all(engine)
    logger.info("Database tables created successfully")


def check_db():
    """Check database connection and tables."""
    try:
        tables = inspect(engine).get_table_names()
        logger.info(f"Database connected. Found {len(tables)} tables: {tables}")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        sys.exit(1)


def reset_db():
    """Drop and recreate all database tables."""
    logger.warning("Dropping all database tables...")
    SQLModel.metadata.drop_all(engine)
    logger.info("Creating database tables...")
    SQLModel.metadata.create_all(engine)
    logger.info("Database reset successfully")


def create_admin(username: str, password: str):
    """Create an admin user."""
    try:
        with next(get_session()) as session:
            admin_user = User(
                username=username,
                hashed_password=hash_password(password),
                role=UserRole.ADMIN,
                is_active=True
            )

            session.add(admin_user)
            session.commit()
            session.refresh(admin_user)

            logger.info(f"Admin user '{username}' created successfully with ID: {admin_user.id}")
    except Exception as e:
        logger.error(f"Failed to create admin user: {e}")
        sys.exit(1)


def tick():
    """Run one periodic action scheduler tick without the Celery beat."""
    with Session(engine) as session:
        report = PeriodicActionScheduler(session).tick()
    logger.info(f"Tick done: {report.executed} executed, {report.failed} failed, {report.due} due")


def deliver():
    """Send scheduled messages whose time has come."""
    with Session(engine) as session:
        outcome = MessageSender(session).deliver_due()
    logger.info(f"Delivered {outcome['sent']} of {outcome['due']} scheduled messages")


def main():
    if len(sys.argv) < 2:
        print("Usage: python manage.py <command> [args]")
        print("Commands:")
        print("  init_db                        - Initialize database tables")
        print("  check_db                       - Check database connection")
        print("  reset_db                       - Drop and recreate all tables")
        print("  create_admin <username> <pass> - Create admin user")
        print("  tick                           - Run due periodic actions once")
        print("  deliver                        - Send due scheduled messages")
        sys.exit(1)

    command = sys.argv[1]

    if command == "init_db":
        init_db()
    elif command == "check_db":
        check_db()
    elif command == "reset_db":
        reset_db()
    elif command == "create_admin":
        if len(sys.argv) != 4:
            print("Usage: python manage.py create_admin <username> <password>")
            sys.exit(1)
        username = sys.argv[2]
        password = sys.argv[3]
        create_admin(username, password)
    elif command == "tick":
        tick()
    elif command == "deliver":
        deliver()
    else:
        print(f"Unknown command: {command}")
        print("Run 'python manage.py' to see available commands")
        sys.exit(1)


if __name__ == "__main__":
    main()
