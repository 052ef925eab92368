"""
Postgres row-level security switches for billing sessions.

Request handlers scope the session to the authenticated user, and the
identity is cleared when the connection goes back to the pool. The
reconciliation writers run their one transaction as a BYPASSRLS role
(``DB_PRIVILEGED_ROLE``, Supabase's ``service_role`` by default).
"""

import logging

from sqlalchemy import text
from sqlalchemy.orm import Session

from .config import DB_PRIVILEGED_ROLE

logger = logging.getLogger(__name__)

CLEAR_USER_SQL = "SELECT set_config('app.current_user_id', '', false)"


def set_rls_context(db: Session, user_id: int) -> None:
    """Scope the session to ``user_id`` (policies read ``app.current_user_id``)"""
    try:
        db.execute(
            text("SELECT set_config('app.current_user_id', :user_id, false)"),
            {"user_id": str(user_id)},
        )
    except Exception as e:
        logger.error(f"❌ Could not scope session to user {user_id}: {e}")
        raise


def clear_rls_identity(dbapi_connection) -> None:
    """Pool check-in hook: the next borrower of this connection starts with no user"""
    if dbapi_connection is None:
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute(CLEAR_USER_SQL)
    finally:
        cursor.close()
    dbapi_connection.commit()


def bypass_rls(db: Session, role: str = DB_PRIVILEGED_ROLE) -> None:
    """Run the rest of the current transaction as ``role`` (must have BYPASSRLS)"""
    quoted = db.get_bind().dialect.identifier_preparer.quote(role)
    try:
        db.execute(text(f"SET LOCAL ROLE {quoted}"))
        logger.debug(f"Reconciliation write running as {role}")
    except Exception as e:
        logger.error(f"❌ Could not switch to privileged role {role}: {e}")
        raise
