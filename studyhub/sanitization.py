"""
Input Sanitization Module

Validates user-supplied values at the API boundary:
- UUID format of identifiers
- Free-text AI instructions (prompt manipulation, code, secrets)
- File size per MIME type
- Filenames and short text fields

All functions raise typed StudyHubError subclasses (400/413).
"""

import re
import unicodedata
from typing import Optional, Tuple

from .constants import (
    FILE_SIZE_LIMITS,
    MAX_DESCRIPTION_LENGTH,
    MAX_FILENAME_LENGTH,
    MAX_INSTRUCTIONS_LENGTH,
    MAX_NAME_LENGTH,
)
from .exceptions import FileTooLargeError, InvalidUUIDError, UnsafeInstructionsError, ValidationError


# =============================================================================
# Configuration
# =============================================================================

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

INSTRUCTION_SECURITY_PATTERNS = [
    # Script tags and executable code
    re.compile(r"<script.*?>.*?</script>", re.IGNORECASE | re.DOTALL),
    re.compile(r"</?script>", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"exec\s*\(", re.IGNORECASE),
    re.compile(r"function\s*\(", re.IGNORECASE),
    re.compile(r"setTimeout\s*\(", re.IGNORECASE),
    re.compile(r"setInterval\s*\(", re.IGNORECASE),
    # SQL injection
    re.compile(r"'\s*OR\s*'1'\s*=\s*'1", re.IGNORECASE),
    re.compile(r"'\s*;\s*DROP\s+TABLE", re.IGNORECASE),
    re.compile(r"'\s*;\s*DELETE\s+FROM", re.IGNORECASE),
    re.compile(r"'\s*;\s*INSERT\s+INTO", re.IGNORECASE),
    # Shell commands
    re.compile(r"\bshell\s*\.", re.IGNORECASE),
    re.compile(r"\brm\s+-rf", re.IGNORECASE),
    re.compile(r"\bdel\s+/[a-z]", re.IGNORECASE),
    re.compile(r"\bformat\s+[a-z]:", re.IGNORECASE),
    # Common exploit patterns
    re.compile(r"\bnewFunction\s*\(", re.IGNORECASE),
    re.compile(r"\bObject\s*\.\s*constructor\s*\.\s*constructor", re.IGNORECASE),
    re.compile(r"\b(fetch|import|require)\s*\(", re.IGNORECASE),
    re.compile(r"\bprocess\s*\.\s*env", re.IGNORECASE),
    re.compile(r"\bdocument\s*\.\s*(write|cookie)", re.IGNORECASE),
    re.compile(r"\bwindow\s*\.\s*(location|open)", re.IGNORECASE),
]

HARMFUL_KEYWORDS = [
    "hack", "exploit", "bypass", "inject", "malicious",
    "vulnerability", "attack", "trojan", "virus", "worm",
    "backdoor", "rootkit", "keylogger", "ransomware",
    "ssh", "sudo", "chmod", "chown", "passwd", "token",
    "firebase", "api key", "secret key", "password",
    "authorization", "bearer", "credential",
]
MAX_HARMFUL_KEYWORDS = 2

CODE_BLOCK_MARKERS = [
    "```js", "```javascript", "```php", "```python", "```ruby", "```bash",
    "```sh", "```sql", "```java", "```c", "```cpp", "```csharp", "```go",
]


# =============================================================================
# Identifiers
# =============================================================================

def is_valid_uuid(value: Optional[str]) -> bool:
    return bool(value) and bool(UUID_PATTERN.match(value))


def validate_uuid(value: Optional[str], field: str) -> str:
    """
    Ensure value is a UUID string.

    Raises:
        ValidationError: If value is missing
        InvalidUUIDError: If value is not UUID-formatted
    """
    if not value:
        raise ValidationError(f"Missing required field: {field}")
    if not UUID_PATTERN.match(value):
        raise InvalidUUIDError(field, value)
    return value


# =============================================================================
# AI Instructions
# =============================================================================

def validate_user_instructions(text: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Screen free-text instructions that will be embedded in an AI prompt.

    Returns:
        (valid, message) where message explains a rejection
    """
    if not text or not text.strip():
        return True, None

    lowered = text.lower()

    for pattern in INSTRUCTION_SECURITY_PATTERNS:
        if pattern.search(text):
            return False, "Instructions contain potentially unsafe code patterns."

    for marker in CODE_BLOCK_MARKERS:
        if marker in lowered:
            return False, "Instructions should not contain code blocks."

    keyword_hits = sum(1 for keyword in HARMFUL_KEYWORDS if keyword in lowered)
    if keyword_hits > MAX_HARMFUL_KEYWORDS:
        return False, "Instructions contain multiple suspicious security-related terms."

    if len(text) > MAX_INSTRUCTIONS_LENGTH:
        return False, f"Instructions are too long. Please limit to {MAX_INSTRUCTIONS_LENGTH} characters."

    return True, None


def ensure_safe_instructions(text: Optional[str]) -> Optional[str]:
    """
    Raise UnsafeInstructionsError if text fails validate_user_instructions.

    Returns:
        The stripped text, or None when empty
    """
    valid, message = validate_user_instructions(text)
    if not valid:
        raise UnsafeInstructionsError(message)
    return text.strip() if text and text.strip() else None


# =============================================================================
# File Size
# =============================================================================

def get_file_size_limit(mime_type: Optional[str]) -> int:
    return FILE_SIZE_LIMITS.get(mime_type or "", FILE_SIZE_LIMITS["default"])


def validate_file_size(size: int, mime_type: Optional[str]) -> int:
    """
    Check a file size against the per-type limit table.

    A file exactly at the limit is accepted; one byte over is rejected.

    Raises:
        FileTooLargeError: If size exceeds the limit for mime_type
    """
    limit = get_file_size_limit(mime_type)
    if size > limit:
        raise FileTooLargeError(size, limit)
    return size


# =============================================================================
# Names & Text
# =============================================================================

def sanitize_filename(filename: Optional[str]) -> str:
    """
    Sanitize an uploaded filename.

    Strips any directory part, rejects traversal sequences and null bytes,
    and enforces the length cap. Unicode letters are allowed so non-Latin
    course material keeps its name.
    """
    if not filename or not filename.strip():
        raise ValidationError("Filename cannot be empty")

    name = unicodedata.normalize("NFC", filename.strip())
    name = name.replace("\\", "/").split("/")[-1]

    if "\x00" in name or name in ("", ".", "..") or ".." in name:
        raise ValidationError("Filename contains forbidden characters")

    if len(name) > MAX_FILENAME_LENGTH:
        raise ValidationError(f"Filename too long (max {MAX_FILENAME_LENGTH} characters)")

    return name


def sanitize_text(value: Optional[str], field: str, max_length: int = MAX_NAME_LENGTH,
                  required: bool = True) -> Optional[str]:
    """Trim a short text field, enforce presence and length, reject null bytes."""
    if value is None or not value.strip():
        if required:
            raise ValidationError(f"{field} cannot be empty")
        return None

    cleaned = value.strip()
    if "\x00" in cleaned:
        raise ValidationError(f"{field} contains forbidden characters")
    if len(cleaned) > max_length:
        raise ValidationError(f"{field} too long (max {max_length} characters)")
    return cleaned


def sanitize_description(value: Optional[str]) -> Optional[str]:
    return sanitize_text(value, "Description", max_length=MAX_DESCRIPTION_LENGTH, required=False)
