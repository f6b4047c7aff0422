"""
Database Manager Module - Event Check-in

This module handles the SQLite connection and schema for the check-in system.
It provides thread-local connections, idempotent schema creation, query and
update helpers, and transaction support for operations that must read and
write atomically (such as toggling a participant between check-in and
check-out).

Features:
- SQLite connection management (one connection per thread)
- Participants and attendance schema with cascading foreign key
- Query/update helpers returning plain dictionaries
- Immediate transactions for read-then-write operations
- Error logging
"""

import sqlite3
import logging
from contextlib import contextmanager
import threading
import uuid
import os

MEMORY_PATH = ':memory:'


class DatabaseManager:
    """
    Database management class for the participant store.
    Handles connection management, schema creation, and raw query execution
    with proper error handling and transaction support.
    """

    def __init__(self, db_path):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str | Path): Path to the SQLite database file, or ':memory:'
        """
        self.db_path = str(db_path)
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()
        self._keeper = None

        if self.db_path == MEMORY_PATH:
            # Named shared-cache database so every thread sees the same tables;
            # it lives as long as the keeper connection stays open
            self._connect_target = f"file:checkin-{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._uri = True
            self._keeper = self._connect()
        else:
            self._connect_target = self.db_path
            self._uri = False

            # Ensure database directory exists
            directory = os.path.dirname(self.db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        # Initialize database schema if it doesn't exist
        self.initialize_database()

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.
        Provides thread-local connections for thread safety.

        Yields:
            sqlite3.Connection: Database connection object
        """
        if not hasattr(self._local, 'connection'):
            self._local.connection = self._connect()

        try:
            yield self._local.connection
        except Exception as e:
            self._local.connection.rollback()
            self.logger.error(f"Database operation failed: {str(e)}")
            raise

    def _connect(self):
        connection = sqlite3.connect(
            self._connect_target,
            check_same_thread=False,
            timeout=30.0,
            uri=self._uri
        )
        connection.row_factory = sqlite3.Row
        # Enable foreign key constraints (needed for ON DELETE CASCADE)
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def initialize_database(self):
        """
        Create the participants and attendance tables.
        This method is idempotent and can be called multiple times safely.
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS participants (
                        id TEXT PRIMARY KEY,
                        full_name TEXT NOT NULL,
                        email TEXT NOT NULL,
                        phone TEXT,
                        organization TEXT,
                        category TEXT,
                        qr_code TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS attendance (
                        id TEXT PRIMARY KEY,
                        participant_id TEXT NOT NULL
                            REFERENCES participants(id) ON DELETE CASCADE,
                        check_in_at TEXT NOT NULL,
                        check_out_at TEXT
                    )
                """)

                # Create indexes for better performance
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_participants_email ON participants(email)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_participants_created ON participants(created_at DESC)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_attendance_participant_id ON attendance(participant_id)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_attendance_check_in ON attendance(check_in_at DESC)")

                conn.commit()
                self.logger.info("Database initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            raise

    def execute_query(self, query, params=None, fetch_all=True):
        """
        Execute a SELECT query and return results.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters
            fetch_all (bool): Whether to fetch all results or just one

        Returns:
            list or dict: Query results
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                if params:
                    cursor.execute(query, params)
                else:
                    cursor.execute(query)

                if fetch_all:
                    return [dict(row) for row in cursor.fetchall()]
                result = cursor.fetchone()
                return dict(result) if result else None

        except Exception as e:
            self.logger.error(f"Query execution failed: {str(e)}")
            raise

    def execute_update(self, query, params=None):
        """
        Execute an INSERT, UPDATE, or DELETE query.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters

        Returns:
            int: Number of affected rows
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                if params:
                    cursor.execute(query, params)
                else:
                    cursor.execute(query)

                conn.commit()
                return cursor.rowcount

        except Exception as e:
            self.logger.error(f"Update execution failed: {str(e)}")
            raise

    @contextmanager
    def transaction(self, immediate=False):
        """
        Context manager for database transactions with automatic rollback on error.

        Args:
            immediate (bool): Take the write lock up front (BEGIN IMMEDIATE) so a
                read followed by a write cannot interleave with another writer

        Yields:
            sqlite3.Connection: Database connection within transaction
        """
        with self.get_connection() as conn:
            try:
                if immediate:
                    conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.logger.error(f"Transaction rolled back: {str(e)}")
                raise

    def close_all_connections(self):
        """Close the current thread's database connection."""
        try:
            if hasattr(self._local, 'connection'):
                self._local.connection.close()
                del self._local.connection
        except Exception as e:
            self.logger.error(f"Error closing connections: {str(e)}")

    def __del__(self):
        """Cleanup when object is destroyed."""
        self.close_all_connections()
        if getattr(self, '_keeper', None) is not None:
            self._keeper.close()
            self._keeper = None
