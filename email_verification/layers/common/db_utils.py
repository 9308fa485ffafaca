import psycopg2
from psycopg2 import sql

from email_verification.layers.common.common_utils import (
    ConfigurationError,
    PersistError,
    PersistPhase,
    RecordTimestampMode,
    VerificationRecord,
)
from email_verification.layers.common.config import DatabaseConfig
from email_verification.layers.common.logging_utils import CorrelationLogger
from email_verification.layers.common.secrets_manager_utils import get_secret_value

TIMESTAMP_COLUMNS = {
    RecordTimestampMode.EXPIRY: "expiry_time",
    RecordTimestampMode.SENT_TIME: "time_sent",
}


class RecordStore:
    """
    Writes one verification row per call.

    Every call opens its own connection and closes it before returning, whether the
    insert succeeded or not. Rows are never updated or upserted.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        log: CorrelationLogger,
        table_name: str,
        timestamp_mode: RecordTimestampMode = RecordTimestampMode.EXPIRY
    ):
        self.config = config
        self.log = log
        self.table_name = table_name
        self.timestamp_mode = timestamp_mode

    def insert(self, record: VerificationRecord) -> None:
        conn = self.get_connection(record)
        try:
            with conn.cursor() as cursor:
                cursor.execute(self.insert_query(), self.insert_params(record))
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise PersistError(
                f"Failed to insert email verification record: {str(e)}",
                phase=PersistPhase.INSERT,
                record=record,
            ) from e
        finally:
            conn.close()

        self.log.info("Email verification record inserted successfully", extra={
            'email': record.email,
            'table': self.table_name,
            'timestampColumn': TIMESTAMP_COLUMNS[self.timestamp_mode],
        })

    def get_connection(self, record: VerificationRecord):
        missing = [
            name for name, value in (
                ("DB_HOST", self.config.host),
                ("DB_USER", self.config.user),
                ("DB_NAME", self.config.name),
            ) if not value
        ]
        if missing:
            raise PersistError(
                f"Missing database configuration: {', '.join(missing)}",
                phase=PersistPhase.CONNECT,
                record=record,
            )

        password = self._resolve_password(record)

        self.log.debug(f"Connecting to database {self.config.host}:{self.config.port}/{self.config.name}")

        try:
            return psycopg2.connect(
                host=self.config.host,
                port=self.config.port,
                dbname=self.config.name,
                user=self.config.user,
                password=password,
                sslmode=self.config.sslmode,
            )
        except psycopg2.Error as e:
            raise PersistError(
                f"Database connection failed: {str(e)}",
                phase=PersistPhase.CONNECT,
                record=record,
            ) from e

    def insert_query(self) -> sql.Composed:
        return sql.SQL("INSERT INTO {table} (email, uuid, {timestamp_column}) VALUES (%s, %s, %s)").format(
            table=sql.Identifier(self.table_name),
            timestamp_column=sql.Identifier(TIMESTAMP_COLUMNS[self.timestamp_mode]),
        )

    def insert_params(self, record: VerificationRecord) -> tuple:
        if self.timestamp_mode == RecordTimestampMode.SENT_TIME:
            return record.email, record.token, record.issued_at
        return record.email, record.token, record.expiry

    def _resolve_password(self, record: VerificationRecord) -> str:
        if self.config.password or not self.config.password_secret:
            return self.config.password

        try:
            return get_secret_value(self.config.password_secret)
        except ConfigurationError as e:
            raise PersistError(
                f"Database password unavailable: {e.message}",
                phase=PersistPhase.CONNECT,
                record=record,
            ) from e
