from coursepay.utils.hashing import generate_hash, generate_chain_hash, sign_callback, verify_callback
from coursepay.utils.validators import normalize_code, validate_discount_code, validate_amount_precision

__all__ = [
    "generate_hash", "generate_chain_hash", "sign_callback", "verify_callback",
    "normalize_code", "validate_discount_code", "validate_amount_precision",
]
