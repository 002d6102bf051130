"""
Audit Service — append-only payment trail, one hash chain per transaction.

Each entry stores its payload and a hash over (action, actor, payload)
chained to the previous entry's hash, so editing or removing a row is
detected by ``verify_chain``.
"""
from datetime import datetime
from typing import Optional, Dict

from sqlalchemy.orm import Session

from coursepay.models.audit import PaymentAuditLog
from coursepay.utils.hashing import generate_chain_hash
from coursepay.utils.logger import get_logger

logger = get_logger(__name__)


def _entry_hash(action: str, actor_id: Optional[str], payload: Dict, previous_hash: str) -> str:
    return generate_chain_hash({"action": action, "actor": actor_id, "payload": payload}, previous_hash)


class AuditService:

    @staticmethod
    def log(
        db: Session,
        transaction_id: str,
        action: str,
        payload: Optional[Dict] = None,
        actor_id=None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        commit: bool = True,
    ) -> PaymentAuditLog:
        """Append an entry to the transaction's chain.

        ``commit=False`` only flushes, so the entry lands in the same
        unit of work as the status change it records.
        """
        last_entry = (
            db.query(PaymentAuditLog)
            .filter(PaymentAuditLog.transaction_id == transaction_id)
            .order_by(PaymentAuditLog.id.desc())
            .first()
        )
        previous_hash = last_entry.payload_hash if last_entry else ""
        actor = str(actor_id) if actor_id is not None else None
        # Round-trip through JSON types so the hash matches what is stored.
        payload = {k: v if isinstance(v, (int, float, bool, type(None))) else str(v)
                   for k, v in (payload or {}).items()}

        entry = PaymentAuditLog(
            transaction_id=transaction_id,
            action=action,
            payload_hash=_entry_hash(action, actor, payload, previous_hash),
            previous_hash=previous_hash,
            actor_id=actor,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:256] or None,
            log_metadata=payload,
            timestamp=datetime.utcnow(),
        )

        db.add(entry)
        if commit:
            db.commit()
            db.refresh(entry)
        else:
            db.flush()
        return entry

    @staticmethod
    def get_trail(db: Session, transaction_id: str) -> list[PaymentAuditLog]:
        return (
            db.query(PaymentAuditLog)
            .filter(PaymentAuditLog.transaction_id == transaction_id)
            .order_by(PaymentAuditLog.id.asc())
            .all()
        )

    @staticmethod
    def verify_chain(db: Session, transaction_id: str) -> dict:
        """Recompute every hash in order.

        Returns ``valid``, ``total_entries`` and ``broken_at`` (the id of the
        first entry that fails), plus a ``message`` when the chain is broken.
        """
        entries = AuditService.get_trail(db, transaction_id)
        previous_hash = ""
        for entry in entries:
            expected = _entry_hash(entry.action, entry.actor_id, entry.log_metadata or {}, previous_hash)
            if entry.previous_hash != previous_hash or entry.payload_hash != expected:
                logger.warning("audit chain for %s broken at entry %s", transaction_id, entry.id)
                return {
                    "valid": False,
                    "total_entries": len(entries),
                    "broken_at": entry.id,
                    "message": f"Chain broken at entry {entry.id} ({entry.action})",
                }
            previous_hash = entry.payload_hash

        return {"valid": True, "total_entries": len(entries), "broken_at": None}
