"""
Cryptographic Hashing Utilities — SHA-256 payload hashing and HMAC signatures.
"""
import hashlib
import hmac
import json


def generate_hash(data: dict) -> str:
    """Generate a SHA-256 hash of a dictionary (deterministic, sorted keys)."""
    canonical = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()


def generate_chain_hash(current_data: dict, previous_hash: str = "") -> str:
    """Generate a chain hash: SHA-256(previous_hash + current_payload).
    Creates a tamper-evident linked chain for the audit trail.
    """
    current_hash = generate_hash(current_data)
    chain_input = f"{previous_hash}{current_hash}".encode("utf-8")
    return hashlib.sha256(chain_input).hexdigest()


def sign_callback(secret: str, transaction_id: str, status: str, gateway_transaction_id: str) -> str:
    """HMAC-SHA256 over the callback fields the gateway vouches for."""
    message = f"{transaction_id}|{status}|{gateway_transaction_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_callback(secret: str, signature: str, transaction_id: str, status: str, gateway_transaction_id: str) -> bool:
    """Constant-time check of a callback signature."""
    if not signature:
        return False
    expected = sign_callback(secret, transaction_id, status, gateway_transaction_id)
    return hmac.compare_digest(expected, signature)
