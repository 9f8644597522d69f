#!/usr/bin/env python3
"""Security & PII gate for source files.

Patient numbers and message text must never reach logs. Fails if:
- print( is found in runtime code (src/**)
- a logger call line mentions a sensitive name without going through
  safe_log_context / redact_value / redact_string on the same line

Usage:
    python scripts/gate_security_pii.py [SRC_DIR]
"""

import re
import sys
from pathlib import Path

# Names that must not appear in logger calls without redaction
SENSITIVE_KEYWORDS = (
    "payload",
    "request.body",
    "request.json",
    "webhook",
    "phone",
    "remote_jid",
    "sender_identifier",
    "raw_text",
    "push_name",
    "api_key",
    "full_name",
)

PRINT_PATTERN = re.compile(r"\bprint\s*\(")

LOGGER_CALL_PATTERN = re.compile(
    r"logger\.(debug|info|warning|error|critical|exception)\s*\("
)

REDACTION_PATTERNS = (
    "safe_log_context",
    "redact_value",
    "redact_string",
)


def check_line(line: str) -> list[str]:
    """Return violations found on a single source line."""
    if line.lstrip().startswith("#"):
        return []

    code = line.split("#", 1)[0]
    problems = []
    if PRINT_PATTERN.search(code):
        problems.append("print() not allowed in runtime code")

    if LOGGER_CALL_PATTERN.search(code) and not any(p in code for p in REDACTION_PATTERNS):
        lowered = code.lower()
        problems.extend(
            f"logger call with '{keyword}' must use redaction (safe_log_context/redact_value)"
            for keyword in SENSITIVE_KEYWORDS
            if keyword in lowered
        )
    return problems


def check_file(filepath: Path) -> list[str]:
    """Check a single file for violations. Returns list of error messages."""
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []

    return [
        f"{filepath}:{lineno}: {problem}"
        for lineno, line in enumerate(content.splitlines(), start=1)
        for problem in check_line(line)
    ]


def check_tree(src_dir: Path) -> list[str]:
    errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        errors.extend(check_file(pyfile))
    return errors


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    src_dir = Path(args[0]) if args else Path(__file__).resolve().parent.parent / "src"

    if not src_dir.exists():
        sys.stderr.write(f"Error: {src_dir} not found\n")
        return 1

    errors = check_tree(src_dir)
    if errors:
        sys.stderr.write("PII gate FAILED - security/PII violations found:\n")
        for err in errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("PII gate PASSED - no security/PII violations found\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
