# synergyhub/migrate.py
# Database migration module for PostgreSQL and SQLite
# Run: python -m synergyhub.migrate

from sqlalchemy.engine import Connection

from synergyhub.db import commit, execute_query, get_db_connection, is_postgres


def run_migrations() -> None:
    """
    Run all database migrations (idempotent).
    Creates tables and indexes if missing. Safe to run multiple times.
    """
    print("[MIGRATE] Starting database migrations...")

    with get_db_connection() as conn:
        if is_postgres():
            _run_postgres_migrations(conn)
        else:
            _run_sqlite_migrations(conn)

        commit(conn)

    print("[MIGRATE] All migrations complete!")


def _run_postgres_migrations(conn: Connection) -> None:
    print("[MIGRATE] Running PostgreSQL migrations...")
    _create_tables(conn, pk="SERIAL PRIMARY KEY")


def _run_sqlite_migrations(conn: Connection) -> None:
    print("[MIGRATE] Running SQLite migrations...")
    _create_tables(conn, pk="INTEGER PRIMARY KEY AUTOINCREMENT")


def _create_tables(conn: Connection, pk: str) -> None:
    # Users table
    execute_query(conn, f"""
        CREATE TABLE IF NOT EXISTS users (
            id {pk},
            email TEXT UNIQUE NOT NULL,
            name TEXT,
            password_hash TEXT NOT NULL,
            default_business_id INTEGER,
            permissions_json TEXT NOT NULL DEFAULT '[]',
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT
        )
    """)

    # Businesses are stored document-style: the members list and the
    # denormalized per-role counters live on the same row and are written
    # together, guarded by the version column.
    execute_query(conn, f"""
        CREATE TABLE IF NOT EXISTS businesses (
            id {pk},
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            owner_id INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'Lead',
            members_json TEXT NOT NULL DEFAULT '[]',
            member_counts_json TEXT NOT NULL DEFAULT '{{}}',
            version INTEGER NOT NULL DEFAULT 0,
            created_by INTEGER,
            created_at TEXT,
            updated_at TEXT
        )
    """)
    execute_query(conn, "CREATE INDEX IF NOT EXISTS idx_businesses_owner ON businesses(owner_id)")

    # User -> businesses list
    execute_query(conn, """
        CREATE TABLE IF NOT EXISTS user_businesses (
            user_id INTEGER NOT NULL,
            business_id INTEGER NOT NULL,
            created_at TEXT,
            PRIMARY KEY (user_id, business_id)
        )
    """)
    execute_query(conn, "CREATE INDEX IF NOT EXISTS idx_user_businesses_business ON user_businesses(business_id)")

    # Dependent records (only the columns membership cleanup and cascade delete touch)
    execute_query(conn, f"""
        CREATE TABLE IF NOT EXISTS projects (
            id {pk},
            business_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            created_at TEXT
        )
    """)
    execute_query(conn, "CREATE INDEX IF NOT EXISTS idx_projects_business ON projects(business_id)")

    execute_query(conn, """
        CREATE TABLE IF NOT EXISTS project_members (
            project_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            PRIMARY KEY (project_id, user_id)
        )
    """)

    execute_query(conn, f"""
        CREATE TABLE IF NOT EXISTS tasks (
            id {pk},
            business_id INTEGER NOT NULL,
            project_id INTEGER,
            title TEXT NOT NULL,
            assignee_id INTEGER,
            created_at TEXT
        )
    """)
    execute_query(conn, "CREATE INDEX IF NOT EXISTS idx_tasks_business_assignee ON tasks(business_id, assignee_id)")

    execute_query(conn, f"""
        CREATE TABLE IF NOT EXISTS clients (
            id {pk},
            business_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            email TEXT,
            created_at TEXT
        )
    """)
    execute_query(conn, "CREATE INDEX IF NOT EXISTS idx_clients_business ON clients(business_id)")

    execute_query(conn, f"""
        CREATE TABLE IF NOT EXISTS invitations (
            id {pk},
            business_id INTEGER NOT NULL,
            email TEXT NOT NULL,
            token TEXT UNIQUE NOT NULL,
            role TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            invited_by INTEGER NOT NULL,
            expires_at TEXT NOT NULL,
            created_at TEXT,
            updated_at TEXT
        )
    """)
    execute_query(conn, "CREATE INDEX IF NOT EXISTS idx_invitations_email_business ON invitations(email, business_id)")

    execute_query(conn, f"""
        CREATE TABLE IF NOT EXISTS audit_logs (
            id {pk},
            business_id INTEGER NOT NULL,
            user_id INTEGER,
            action TEXT NOT NULL,
            resource_type TEXT NOT NULL,
            resource_id INTEGER,
            changes_json TEXT,
            metadata_json TEXT,
            ip_address TEXT,
            user_agent TEXT,
            created_at TEXT
        )
    """)
    execute_query(conn, "CREATE INDEX IF NOT EXISTS idx_audit_logs_business ON audit_logs(business_id, created_at)")

    execute_query(conn, f"""
        CREATE TABLE IF NOT EXISTS notifications (
            id {pk},
            user_id INTEGER NOT NULL,
            business_id INTEGER,
            type TEXT NOT NULL,
            message TEXT NOT NULL,
            is_read INTEGER NOT NULL DEFAULT 0,
            created_at TEXT
        )
    """)
    execute_query(conn, "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at)")

    print("[MIGRATE] Tables ready")


if __name__ == "__main__":
    run_migrations()
