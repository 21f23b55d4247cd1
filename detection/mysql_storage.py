import json
import threading
from datetime import timezone
from typing import Any, Dict, List, Optional

import pymysql
import pymysql.cursors

from probe.core import logger
from probe.url_utils import site_key
from detection.models import DetectionRecord
from detection.storage import DetectionResultStore

DETECTIONS_TABLE = "hosting_provider_detections"
FINGERPRINTS_TABLE = "hosting_provider_fingerprints"

SCHEMA_SQL = [
    f"""
    CREATE TABLE IF NOT EXISTS {FINGERPRINTS_TABLE} (
        id BIGINT AUTO_INCREMENT PRIMARY KEY,
        provider_name VARCHAR(100) NOT NULL,
        provider_type VARCHAR(50) NOT NULL,
        fingerprint_type VARCHAR(50) NOT NULL,
        fingerprint_key VARCHAR(255) NOT NULL,
        fingerprint_value TEXT NOT NULL,
        fingerprint_pattern_type VARCHAR(20) DEFAULT 'contains',
        confidence_weight INT DEFAULT 50,
        is_active TINYINT(1) DEFAULT 1,
        requires_auth TINYINT(1) DEFAULT 0,
        api_endpoint VARCHAR(500),
        documentation_url VARCHAR(500),
        deployment_methods JSON,
        capabilities JSON,
        metadata JSON,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
        version INT DEFAULT 1,
        INDEX idx_hosting_fingerprints_lookup (fingerprint_type, fingerprint_key, is_active)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {DETECTIONS_TABLE} (
        id BIGINT AUTO_INCREMENT PRIMARY KEY,
        user_token VARCHAR(255) NOT NULL,
        site_url TEXT NOT NULL,
        domain VARCHAR(255) NOT NULL,
        detected_providers JSON,
        primary_provider VARCHAR(100),
        confidence_score INT DEFAULT 0,
        detection_methods JSON,
        fingerprints_matched JSON,
        detection_duration_ms INT,
        user_agent VARCHAR(255),
        detected_at DATETIME NOT NULL,
        INDEX idx_provider_detections_user (user_token),
        INDEX idx_provider_detections_domain (domain),
        INDEX idx_provider_detections_detected_at (detected_at)
    )
    """,
]

_SELECT_COLUMNS = """
    id, user_token, site_url, domain, detected_providers, primary_provider,
    confidence_score, detection_methods, fingerprints_matched,
    detection_duration_ms, user_agent, detected_at
"""


class MySQLDetectionResultStore(DetectionResultStore):
    """
    MySQL implementation of DetectionResultStore.
    The schema check runs once and is cached until invalidate().
    """

    def __init__(self, connection):
        self._conn = connection
        self._lock = threading.Lock()
        self._enabled: Optional[bool] = None

    def is_enabled(self) -> bool:
        if self._enabled is None:
            self._enabled = self._table_exists(DETECTIONS_TABLE)
            if not self._enabled:
                logger.warning(f"[STORE] Table {DETECTIONS_TABLE} missing. Detection results will not be saved.")
        return self._enabled

    def invalidate(self) -> None:
        """Forget the cached schema check (e.g. after running ensure_schema)."""
        self._enabled = None

    def ensure_schema(self) -> None:
        with self._lock:
            with self._conn.cursor() as cursor:
                for statement in SCHEMA_SQL:
                    cursor.execute(statement)
            self._conn.commit()
        self.invalidate()

    def save(self, record: DetectionRecord) -> None:
        """Insert one detection record."""
        sql = f"""
            INSERT INTO {DETECTIONS_TABLE} (
                user_token, site_url, domain, detected_providers, primary_provider,
                confidence_score, detection_methods, fingerprints_matched,
                detection_duration_ms, user_agent, detected_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        detected_at = record.detected_at
        if detected_at.tzinfo is not None:
            detected_at = detected_at.astimezone(timezone.utc).replace(tzinfo=None)

        with self._lock:
            try:
                with self._conn.cursor() as cursor:
                    cursor.execute(sql, (
                        record.identity_context, record.normalized_url, record.domain,
                        json.dumps(record.candidate_providers), record.primary_provider_name,
                        int(record.overall_confidence), json.dumps(record.detection_methods_used),
                        json.dumps(record.detection_matches), record.duration_ms,
                        record.user_agent, detected_at
                    ))
                self._conn.commit()
            except Exception as e:
                self._conn.rollback()
                raise RuntimeError(f"Failed to save detection for {record.domain}: {str(e)}") from e

    def get_latest(self, identity_context: str, domain: str) -> Optional[DetectionRecord]:
        sql = f"""
            SELECT {_SELECT_COLUMNS}
            FROM {DETECTIONS_TABLE}
            WHERE user_token = %s AND domain = %s
            ORDER BY detected_at DESC
            LIMIT 1
        """
        with self._lock:
            with self._conn.cursor() as cursor:
                cursor.execute(sql, (identity_context, site_key(domain)))
                row = cursor.fetchone()
        return self._row_to_record(row) if row else None

    def list_for_user(self, identity_context: str, limit: int = 50) -> List[DetectionRecord]:
        sql = f"""
            SELECT {_SELECT_COLUMNS}
            FROM {DETECTIONS_TABLE}
            WHERE user_token = %s
            ORDER BY detected_at DESC
            LIMIT %s
        """
        with self._lock:
            with self._conn.cursor() as cursor:
                cursor.execute(sql, (identity_context, int(limit)))
                rows = cursor.fetchall()
        return [self._row_to_record(row) for row in rows or ()]

    def _table_exists(self, table: str) -> bool:
        try:
            with self._lock:
                with self._conn.cursor() as cursor:
                    cursor.execute("SHOW TABLES LIKE %s", (table,))
                    return cursor.fetchone() is not None
        except pymysql.MySQLError as e:
            logger.error(f"[STORE] Schema check failed: {e}")
            return False

    @staticmethod
    def _row_to_record(row) -> DetectionRecord:
        return DetectionRecord(
            record_id=row[0],
            identity_context=row[1],
            normalized_url=row[2],
            domain=row[3],
            candidate_providers=_loads(row[4]),
            primary_provider_name=row[5],
            overall_confidence=row[6] or 0,
            detection_methods_used=_loads(row[7]),
            detection_matches=_loads(row[8]),
            duration_ms=row[9] or 0,
            user_agent=row[10],
            detected_at=row[11],
        )


class MySQLFingerprintStore:
    """
    Reads fingerprint rows so the catalog can change without a deploy.
    Pair with detection.catalog.catalog_from_records().
    """

    def __init__(self, connection):
        self._conn = connection

    def get_active_fingerprints(self, provider_name: Optional[str] = None) -> List[Dict[str, Any]]:
        sql = f"""
            SELECT id, provider_name, provider_type, fingerprint_type, fingerprint_key,
                   fingerprint_value, fingerprint_pattern_type, confidence_weight,
                   requires_auth, documentation_url, deployment_methods, capabilities
            FROM {FINGERPRINTS_TABLE}
            WHERE is_active = 1
        """
        params = ()
        if provider_name:
            sql += " AND provider_name = %s"
            params = (provider_name,)
        sql += " ORDER BY id ASC"

        with self._conn.cursor(pymysql.cursors.DictCursor) as cursor:
            cursor.execute(sql, params)
            return list(cursor.fetchall() or ())


def _loads(value):
    if value is None:
        return []
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value) if value else []
    return value
