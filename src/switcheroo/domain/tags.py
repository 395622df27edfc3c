"""Rule tag grammar — formatting and parsing of namespace tags.

Tags live in the iptables rule comment:

    SWITCHEROO:ns=<namespace>:port=<port>:pid=<pid>

iptables caps comments at 256 bytes. The namespace is limited to 180 bytes
so the full tag (prefix, field names, a 5-digit port and a pid) always fits.
"""

from __future__ import annotations

import functools
import re

from switcheroo.domain.errors import ConfigurationError, RuleParseError
from switcheroo.domain.rules import Chain, Rule

TAG_PREFIX = "SWITCHEROO"
COMMENT_MAX_BYTES = 256
NAMESPACE_MAX_BYTES = 180


def validate_namespace(namespace: str) -> str:
    """Return *namespace* unchanged, or raise ConfigurationError.

    Namespaces must be non-empty, at most 180 bytes of UTF-8, and free of
    ``:`` and whitespace (both delimit tag fields).
    """
    if not namespace:
        raise ConfigurationError("namespace must not be empty")
    size = len(namespace.encode("utf-8"))
    if size > NAMESPACE_MAX_BYTES:
        msg = (
            f"namespace is too long ({size} bytes); the limit is {NAMESPACE_MAX_BYTES} bytes "
            f"to stay within the {COMMENT_MAX_BYTES} byte limit for iptables comments"
        )
        raise ConfigurationError(msg, namespace_bytes=size, limit=NAMESPACE_MAX_BYTES)
    if ":" in namespace or any(ch.isspace() for ch in namespace):
        raise ConfigurationError(f"namespace {namespace!r} must not contain ':' or whitespace")
    return namespace


def format_tag(namespace: str, port: int, pid: int) -> str:
    """Build the comment tag identifying a rule's namespace, port and owner."""
    return f"{TAG_PREFIX}:ns={namespace}:port={port}:pid={pid}"


@functools.lru_cache(maxsize=32)
def _tag_pattern(namespace: str) -> re.Pattern[str]:
    return re.compile(
        rf"{TAG_PREFIX}:ns={re.escape(namespace)}:port=(?P<port>[^:\s]*):pid=(?P<pid>[^:\s]*)"
    )


def _parse_int(field: str, value: str, line: str) -> int:
    if not value.isdecimal():
        raise RuleParseError(f"invalid {field} {value!r} in rule line: {line.strip()}", line=line)
    return int(value)


def parse_rule_line(line: str, namespace: str, chain: Chain) -> Rule | None:
    """Parse one line of ``iptables -L --line-numbers`` output.

    Returns None for lines that carry no tag of *namespace* (headers,
    foreign rules, other namespaces). Raises RuleParseError when a tagged
    line has a malformed rule number, port, or pid.
    """
    match = _tag_pattern(namespace).search(line)
    if match is None:
        return None

    head = line.split(None, 1)
    number = _parse_int("rule number", head[0] if head else "", line)
    port = _parse_int("port", match.group("port"), line)
    pid = _parse_int("pid", match.group("pid"), line)
    if number < 1:
        raise RuleParseError(f"invalid rule number {number} in rule line: {line.strip()}", line=line)
    return Rule(chain=chain, number=number, port=port, pid=pid)


def parse_rules(output: str, namespace: str, chain: Chain) -> list[Rule]:
    """Extract all rules tagged with *namespace* from a chain listing."""
    rules: list[Rule] = []
    for line in output.splitlines():
        rule = parse_rule_line(line, namespace, chain)
        if rule is not None:
            rules.append(rule)
    return rules
