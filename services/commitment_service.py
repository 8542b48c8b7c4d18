"""
承諾服務：commit-reveal 的雜湊計算與驗證

承諾格式：sha256(f"{choice}:{nonce}") 的小寫十六進位字串

範例：
    compute_commitment(1, "nonceX") == sha256("1:nonceX")

純計算邏輯，不涉及狀態轉換
"""
import hashlib
import hmac
import re
import secrets

_COMMITMENT_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


def compute_commitment(choice: int, nonce: str) -> str:
    payload = f"{choice}:{nonce}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def is_valid_commitment_format(value) -> bool:
    """承諾必須是 64 個十六進位字元（sha256 hexdigest）"""
    return isinstance(value, str) and bool(_COMMITMENT_PATTERN.match(value))


def verify_reveal(commitment: str, choice: int, nonce: str) -> bool:
    """
    驗證揭示的 (choice, nonce) 是否對應先前儲存的承諾

    使用 hmac.compare_digest 做定時比較

    參數：
        commitment: 先前儲存的承諾（小寫 hex）
        choice: 揭示的選擇
        nonce: 揭示的亂數

    返回：
        True 如果重新計算的雜湊與承諾相同
    """
    if not commitment:
        return False
    expected = compute_commitment(choice, nonce)
    return hmac.compare_digest(expected, commitment.lower())


def generate_nonce() -> str:
    return secrets.token_hex(16)
