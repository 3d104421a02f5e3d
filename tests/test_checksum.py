import secrets

from namaste_loyalty.utils.checksum import append_checksum, compute_checksum, verify_checksum


def test_known_checksum():
    assert compute_checksum("NAMASTE-ABC123") == "H"
    assert verify_checksum("NAMASTE-ABC123H")
    assert not verify_checksum("NAMASTE-ABC123Z")


def test_checksum_is_single_alphanumeric_char():
    for _ in range(50):
        checksum = compute_checksum(f"NAMASTE-{secrets.token_hex(4).upper()}")
        assert len(checksum) == 1
        assert checksum.isdigit() or "A" <= checksum <= "Z"


def test_generated_codes_verify():
    for _ in range(200):
        assert verify_checksum(append_checksum(f"NAMASTE-{secrets.token_hex(4).upper()}"))


def test_single_character_change_is_mostly_detected():
    # 位置权重使部分替换无法被发现，整体检出率约 93%
    alphabet = "0123456789ABCDEF"
    detected = 0
    total = 0
    for _ in range(50):
        full_code = append_checksum(f"NAMASTE-{secrets.token_hex(4).upper()}")
        body, checksum = full_code[:-1], full_code[-1]
        for position in range(len("NAMASTE-"), len(body)):
            for replacement in alphabet:
                if replacement == body[position]:
                    continue
                tampered = body[:position] + replacement + body[position + 1:] + checksum
                total += 1
                detected += not verify_checksum(tampered)
    assert detected / total >= 0.9


def test_verify_rejects_short_input():
    assert not verify_checksum("")
    assert not verify_checksum("A")
