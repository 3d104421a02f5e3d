"""
兑换码校验位

生成的兑换码末尾追加一位校验字符（0-9 / A-Z），
在查询数据库之前即可拦截输错或篡改的兑换码。
"""
import string

CHECKSUM_PRIME = 17
CHECKSUM_ALPHABET = string.digits + string.ascii_uppercase


def compute_checksum(code: str) -> str:
    """
    计算兑换码的校验字符

    每个字符按位置（从 1 开始）累加 ``c + c * i``，
    总和乘以质数 17 后对 36 取模，映射到 0-9 / A-Z。

    Args:
        code: 不含校验位的兑换码

    Returns:
        单个校验字符
    """
    total = 0
    for position, char in enumerate(code, start=1):
        char_code = ord(char)
        total += char_code + char_code * position
    return CHECKSUM_ALPHABET[(total * CHECKSUM_PRIME) % len(CHECKSUM_ALPHABET)]


def append_checksum(code: str) -> str:
    """返回追加校验位后的完整兑换码"""
    return f"{code}{compute_checksum(code)}"


def verify_checksum(full_code: str) -> bool:
    """校验完整兑换码（最后一位为校验字符）"""
    if not full_code or len(full_code) < 2:
        return False
    body, provided = full_code[:-1], full_code[-1]
    return compute_checksum(body) == provided
