"""PII redaction for free-text log lines.

Every step is idempotent: masked output never matches its own pattern
again, so redacting an already-redacted line is a no-op.
"""
import re
from typing import Any, Dict, Iterable, Optional

MASK = "***"

SENSITIVE_FIELDS = (
    "password", "passwd", "pwd",
    "secret", "client_secret", "api_key", "apikey", "access_key",
    "private_key", "priv_key",
    "authorization", "auth",
    "session_id", "sessionid",
    "access_token", "refresh_token", "token",
    "credit_card", "card_number", "cvv",
)

EMAIL_PATTERN = re.compile(r"\b([A-Za-z0-9])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")

# 7+ digits overall, optional leading +, spaces, dashes and parentheses.
# Never starts or ends inside a dotted run, so IPv4 octets are left to mask_ips.
PHONE_PATTERN = re.compile(r"(?<![\w*+.])\+?\(?\d[\d \t()\-]*\d(?![\w*]|\.\d)")
DATE_PREFIX = re.compile(r"\d{4}-\d{2}-\d{2}\b")

TOKEN_PATTERN = re.compile(
    r"(?<![\w*])((?:token|key|secret|bearer)[_-]?)?"
    r"((?=[A-Za-z+/=]*[0-9])[A-Za-z0-9+/=]{10,})(?![\w*])",
    re.IGNORECASE,
)

IP_PATTERN = re.compile(r"\b(\d{1,3})\.\d{1,3}\.\d{1,3}\.\d{1,3}\b")

NAME_PATTERN = re.compile(
    r"\b(first_?name|last_?name|full_?name|customer_?name|recipient_?name)"
    r"([\"']?\s*[:=]\s*[\"']?)"
    r"([A-Za-z][a-z]+(?:\s+[A-Z][a-z]+)*)"
)


def _sensitive_field_pattern(fields: Iterable[str]) -> "re.Pattern[str]":
    names = "|".join(re.escape(f) for f in sorted(set(fields), key=len, reverse=True))
    return re.compile(
        r"([\"']?\b(?:" + names + r")[\"']?\s*[:=]\s*)"
        r"([\"']?)((?:bearer|basic)\s+)?[^\"',}\s]+([\"']?)",
        re.IGNORECASE,
    )


class LogRedactor:
    """Pattern-based PII masking for log text."""

    def __init__(self, sensitive_fields: Optional[Iterable[str]] = None):
        self.sensitive_fields = tuple(sensitive_fields or SENSITIVE_FIELDS)
        self._field_pattern = _sensitive_field_pattern(self.sensitive_fields)

    def mask_emails(self, text: str) -> str:
        """user@example.com -> u***@example.com"""
        return EMAIL_PATTERN.sub(lambda m: f"{m.group(1)}{MASK}@{m.group(2)}", text)

    def mask_phones(self, text: str) -> str:
        """+628123456789 -> ******6789"""
        def _replace(match: re.Match) -> str:
            digits = re.sub(r"\D", "", match.group(0))
            if len(digits) < 7 or DATE_PREFIX.match(match.group(0)):
                return match.group(0)
            return "******" + digits[-4:]
        return PHONE_PATTERN.sub(_replace, text)

    def mask_tokens(self, text: str) -> str:
        """abc123xyz789 -> abc***789, keeping a token/key/secret/bearer marker."""
        def _replace(match: re.Match) -> str:
            prefix = match.group(1) or ""
            token = match.group(2)
            return f"{prefix}{token[:3]}{MASK}{token[-3:]}"
        return TOKEN_PATTERN.sub(_replace, text)

    def mask_ips(self, text: str) -> str:
        """192.168.1.100 -> 192.***.***.***"""
        return IP_PATTERN.sub(lambda m: f"{m.group(1)}.{MASK}.{MASK}.{MASK}", text)

    def mask_names(self, text: str) -> str:
        """first_name: John Doe -> first_name: J*** D***"""
        def _replace(match: re.Match) -> str:
            masked = " ".join(part[0] + MASK for part in match.group(3).split())
            return f"{match.group(1)}{match.group(2)}{masked}"
        return NAME_PATTERN.sub(_replace, text)

    def mask_sensitive_fields(self, text: str) -> str:
        """password=hunter2 -> password=***, "api_key": "x" -> "api_key": "***" """
        return self._field_pattern.sub(lambda m: f"{m.group(1)}{m.group(2)}{MASK}{m.group(4)}", text)

    def redact(self, text: str) -> str:
        if not text:
            return text
        masked = self.mask_emails(text)
        masked = self.mask_phones(masked)
        masked = self.mask_tokens(masked)
        masked = self.mask_ips(masked)
        masked = self.mask_names(masked)
        return self.mask_sensitive_fields(masked)

    def redact_mapping(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Redact a structured log payload."""
        if not isinstance(data, dict):
            return data

        sensitive = {f.lower() for f in self.sensitive_fields}
        result: Dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(key, str) and key.lower() in sensitive:
                result[key] = MASK
            elif isinstance(value, str):
                result[key] = self.redact(value)
            elif isinstance(value, dict):
                result[key] = self.redact_mapping(value)
            elif isinstance(value, list):
                result[key] = [
                    self.redact_mapping(v) if isinstance(v, dict)
                    else self.redact(v) if isinstance(v, str)
                    else v
                    for v in value
                ]
            else:
                result[key] = value
        return result


_default_redactor = LogRedactor()


def redact(text: str) -> str:
    """Redact PII from a string with the default rules."""
    return _default_redactor.redact(text)


def redact_mapping(data: Dict[str, Any]) -> Dict[str, Any]:
    """Redact sensitive fields from a dictionary with the default rules."""
    return _default_redactor.redact_mapping(data)
