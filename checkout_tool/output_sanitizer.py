"""Output sanitization — redact card numbers, phones and credentials before returning to the LLM."""
import re

# Credential patterns
_CREDENTIAL_PATTERNS = [
    re.compile(r"(?i)(api[_-]?key|secret|password|access[_-]?token|bearer)\s*[=:]\s*\S+"),
    re.compile(r"sk-[a-zA-Z0-9]{20,}"),
    re.compile(r"ghp_[a-zA-Z0-9]{36}"),
    re.compile(r"AKIA[A-Z0-9]{16}"),
]

# Candidate card numbers: 13-19 digits, optionally space/dash separated.
# Runs glued to a word or a dash (order ids like ORDER-1700000000000) are skipped.
_CARD_CANDIDATE = re.compile(r"(?<![\w-])\d(?:[ -]?\d){12,18}(?![\w-])")

# Indian mobile numbers as they appear in contact fields
_PHONE_PATTERN = re.compile(r"(?<![\w-])(?:\+?91[ -]?)?[6-9]\d{9}(?![\w-])")

# ANSI escape codes
_ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")


def _luhn_valid(digits: str) -> bool:
    total = 0
    for i, ch in enumerate(reversed(digits)):
        n = int(ch)
        if i % 2 == 1:
            n *= 2
            if n > 9:
                n -= 9
        total += n
    return total % 10 == 0


def redact_card_number(number: str) -> str:
    """Mask a card number to show only last 4 digits."""
    digits = re.sub(r"\D", "", number)
    if len(digits) < 4:
        return "****"
    return f"****-****-****-{digits[-4:]}"


def redact_phone(phone: str) -> str:
    """Keep only the last 4 digits of a phone number."""
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 4:
        return "****"
    return f"******{digits[-4:]}"


def redact_email(email: str) -> str:
    """Partially redact an email address."""
    if "@" not in email:
        return email
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"


def _redact_card_match(match: re.Match) -> str:
    digits = re.sub(r"\D", "", match.group(0))
    if _luhn_valid(digits):
        return "[CARD REDACTED]"
    return match.group(0)


def sanitize_output(text: str, max_chars: int = 50000) -> str:
    """
    Sanitize text before returning to the LLM.

    - Strips ANSI escape codes
    - Redacts credential patterns
    - Redacts card numbers (Luhn-valid digit runs only)
    - Redacts mobile numbers
    - Truncates to max_chars
    """
    text = _ANSI_PATTERN.sub("", text)

    for pattern in _CREDENTIAL_PATTERNS:
        text = pattern.sub("[REDACTED]", text)

    text = _CARD_CANDIDATE.sub(_redact_card_match, text)
    text = _PHONE_PATTERN.sub(lambda m: redact_phone(m.group(0)), text)

    if len(text) > max_chars:
        text = text[:max_chars] + f"\n\n[... truncated at {max_chars} chars]"

    return text
