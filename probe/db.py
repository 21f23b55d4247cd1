"""
Database connection for the optional detection result store.
"""

import pymysql
from probe.core import DB_CONFIG, logger


def get_connection(config=None):
    """
    Create and return a PyMySQL connection using DB_CONFIG.
    Returns None when MySQL is not configured or unreachable; callers
    treat that as "persistence disabled".
    """
    cfg = dict(config or DB_CONFIG)
    if not cfg.get("user") or not cfg.get("database"):
        logger.info("[DB] MYSQL_USER/MYSQL_DATABASE not set. Result persistence disabled.")
        return None

    try:
        return pymysql.connect(**cfg)
    except pymysql.MySQLError as e:
        logger.warning(f"[DB] Failed to connect to MySQL at {cfg.get('host')}: {e}")
        return None
