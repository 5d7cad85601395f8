"""
Secret scrubbing for anything that leaves the process.

FILTERS is applied in order, each filter running over the output of the one
before it. Every replacement uses the same MARKER so the text alone never says
which kind of secret was there; RedactionResult.matches carries filter names
and counts, never the matched values.

Bare secret values run to the next whitespace or quote, brackets included. A
captured value that is exactly the marker is already scrubbed and is left
alone, and the module refuses to import if any filter fires on the marker in
one of MARKER_PROBES.
"""
import math
import re
from collections import Counter
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from .schema import RedactionMatch, RedactionResult

MARKER = "[REDACTED]"

# a shell word value: double quoted, single quoted, or bare (an unclosed quote
# swallows the rest of the word)
_VALUE = r"(?:\"[^\"\n]*\"|'[^'\n]*'|[\"']?[^\s\"']+)"
_BARE = r"[^\s\"']+"
# refuses a value that is exactly the marker, so a lazy prefix can move on to
# the next candidate
_UNSCRUBBED = r"(?![\"']?\[REDACTED\][\"']?(?:\s|$))"
_SCHEME_RE = re.compile(r"(?i)^(?:bearer|basic|token|digest|bot|negotiate)\s+")

# names like DB_PASSWORD or github_token; the lookahead keeps the scan linear
# on long words
_SENSITIVE_NAME = (
    r"(?<![A-Za-z0-9_])(?=[A-Za-z0-9_]*?(?:password|passwd|passphrase|secret|token|api_?key|apikey"
    r"|access_?key|private_?key|credentials?|auth_?token|client_?secret))[A-Za-z0-9_]+"
)

BASE64_MIN_LEN = 40
HEX_MIN_LEN = 32
TOKEN_MIN_LEN = 32
BASE64_MIN_ENTROPY = 4.0
HEX_MIN_ENTROPY = 3.0
TOKEN_MIN_ENTROPY = 4.0

# upper bound on re-passes; each pass only ever shrinks unredacted text
MAX_PASSES = 8


class SecretFilter(NamedTuple):
    name: str
    category: str
    pattern: "re.Pattern[str]"
    # optional second look at a candidate span; False leaves it alone
    accept: Optional[Callable[[str], bool]] = None


def shannon_entropy(s: str) -> float:
    if not s:
        return 0.0
    n = len(s)
    return -sum((c / n) * math.log2(c / n) for c in Counter(s).values())


def _entropy_at_least(limit: float, need_digit: bool = False) -> Callable[[str], bool]:
    def check(span: str) -> bool:
        if need_digit and not (any(ch.isdigit() for ch in span) and any(ch.isalpha() for ch in span)):
            return False
        return shannon_entropy(span) >= limit
    return check


def _mixed_base64(span: str) -> bool:
    body = span.rstrip("=")
    if not (any(c.islower() for c in body) and any(c.isupper() for c in body) and any(c.isdigit() for c in body)):
        return False
    return shannon_entropy(body) >= BASE64_MIN_ENTROPY


def _not_marker(span: str) -> bool:
    return _SCHEME_RE.sub("", span.strip("\"'"), count=1) != MARKER


FILTERS: tuple = (
    SecretFilter(
        "private_key_block",
        "private-key",
        re.compile(
            r"-----BEGIN (?:[A-Z0-9]+ )*PRIVATE KEY(?: BLOCK)?-----"
            r".*?(?:-----END (?:[A-Z0-9]+ )*PRIVATE KEY(?: BLOCK)?-----|\Z)",
            re.S,
        ),
    ),
    SecretFilter(
        "url_credentials",
        "url-userinfo",
        re.compile(
            r"(?<![A-Za-z0-9+.\-])[A-Za-z][A-Za-z0-9+.\-]*://"
            r"(?P<secret>[^\s/@:\"']+:[^\s/@\"']*|[^\s/@:\"']{16,})@"
        ),
        _not_marker,
    ),
    SecretFilter(
        "authorization_header",
        "authorization-header",
        re.compile(
            r"(?i)\b(?:proxy-)?authorization\s*:\s*" + _UNSCRUBBED +
            r"(?P<secret>(?:(?:bearer|basic|token|digest|bot|negotiate)\s+)?" + _BARE + r")"
        ),
        _not_marker,
    ),
    SecretFilter(
        "api_key_header",
        "authorization-header",
        re.compile(
            r"(?i)\b(?:x-api-key|api-key|x-auth-token|private-token|x-access-token)\s*:\s*"
            + _UNSCRUBBED + r"(?P<secret>" + _BARE + r")"
        ),
        _not_marker,
    ),
    SecretFilter(
        "bearer_token",
        "bearer-token",
        re.compile(r"(?i)\bbearer\s+(?P<secret>[A-Za-z0-9\-._~+/]{8,}=*)"),
    ),
    SecretFilter(
        "npm_token",
        "registry-token",
        re.compile(r"\bnpm_[A-Za-z0-9]{36}\b"),
    ),
    SecretFilter(
        "registry_auth_config",
        "registry-token",
        re.compile(
            r"(?i)(?<![A-Za-z0-9])(?:_authToken|_auth|_password)\s*=\s*"
            + _UNSCRUBBED + r"(?P<secret>" + _VALUE + r")"
        ),
        _not_marker,
    ),
    SecretFilter(
        "pypi_token",
        "registry-token",
        re.compile(r"\bpypi-[A-Za-z0-9_\-]{50,}"),
    ),
    SecretFilter(
        "github_token",
        "registry-token",
        re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{36,}|github_pat_[A-Za-z0-9_]{22,})"),
    ),
    SecretFilter(
        "aws_access_key",
        "cloud-access-key",
        re.compile(r"\b(?:AKIA|ASIA|ABIA|ACCA|AGPA|AIDA|AIPA|ANPA|ANVA|AROA|APKA)[A-Z0-9]{16}\b"),
    ),
    SecretFilter(
        "gcp_api_key",
        "cloud-access-key",
        re.compile(r"\bAIza[0-9A-Za-z_\-]{35}"),
    ),
    SecretFilter(
        "prefixed_api_key",
        "api-token",
        re.compile(
            r"\b(?:sk-(?:ant-|proj-|live-)?[A-Za-z0-9_\-]{20,}"
            r"|(?:sk|rk|pk)_(?:live|test)_[A-Za-z0-9]{16,}"
            r"|xox[abposr]-[A-Za-z0-9\-]{10,}"
            r"|glpat-[A-Za-z0-9_\-]{20,})"
        ),
    ),
    SecretFilter(
        "sensitive_env_assignment",
        "env-assignment",
        re.compile(r"(?i)" + _SENSITIVE_NAME + r"\s*=\s*" + _UNSCRUBBED + r"(?P<secret>" + _VALUE + r")"),
        _not_marker,
    ),
    SecretFilter(
        "password_flag",
        "password-argument",
        re.compile(
            r"(?i)(?:^|(?<=\s))--?(?:password|passwd|pass|passphrase|secret|token|api-?key|auth-token|client-secret)"
            r"(?:=|\s+)" + _UNSCRUBBED + r"(?P<secret>" + _VALUE + r")"
        ),
        _not_marker,
    ),
    SecretFilter(
        "inline_password_flag",
        "password-argument",
        re.compile(
            r"(?:\b(?:mysql|mysqldump|mysqladmin|mariadb)\b[^|;&\n]*?\s-p"
            r"|\bsshpass\b[^|;&\n]*?\s-p\s*)"
            + _UNSCRUBBED + r"(?P<secret>" + _BARE + r")"
        ),
        _not_marker,
    ),
    SecretFilter(
        "basic_auth_argument",
        "password-argument",
        re.compile(r"(?:^|(?<=\s))(?:-u|--user)\s+[^\s:]+:" + _UNSCRUBBED + r"(?P<secret>" + _BARE + r")"),
        _not_marker,
    ),
    SecretFilter(
        "jwt",
        "api-token",
        re.compile(r"\beyJ[A-Za-z0-9_\-]{5,}\.[A-Za-z0-9_\-]{5,}\.[A-Za-z0-9_\-]{5,}"),
    ),
    SecretFilter(
        "base64_blob",
        "base64-blob",
        re.compile(r"(?<![A-Za-z0-9+/=])[A-Za-z0-9+][A-Za-z0-9+/]{%d,}={0,2}(?![A-Za-z0-9+/=])" % (BASE64_MIN_LEN - 1)),
        _mixed_base64,
    ),
    SecretFilter(
        "hex_token",
        "high-entropy-token",
        re.compile(r"(?<![A-Za-z0-9])[A-Fa-f0-9]{%d,}(?![A-Za-z0-9])" % HEX_MIN_LEN),
        _entropy_at_least(HEX_MIN_ENTROPY),
    ),
    SecretFilter(
        "high_entropy_token",
        "high-entropy-token",
        re.compile(r"(?<![A-Za-z0-9_\-])[A-Za-z0-9_\-]{%d,}(?![A-Za-z0-9_\-])" % TOKEN_MIN_LEN),
        _entropy_at_least(TOKEN_MIN_ENTROPY, need_digit=True),
    ),
)


# contexts the marker ends up in; none of them may look like a secret again
MARKER_PROBES = (
    MARKER,
    f"TOKEN={MARKER}",
    f'PASSWORD="{MARKER}"',
    f"Authorization: {MARKER}",
    f"Bearer {MARKER}",
    f"--password {MARKER}",
    f"https://{MARKER}@example.com",
    f"mysql -p{MARKER}",
    f"sshpass -p {MARKER}",
    f"curl -u user:{MARKER}",
    f"{MARKER} {MARKER}",
)


def _secret_span(m: "re.Match[str]") -> str:
    if "secret" in m.re.groupindex and m.group("secret") is not None:
        return m.group("secret")
    return m.group(0)


def _fires(f: SecretFilter, text: str) -> bool:
    for m in f.pattern.finditer(text):
        if f.accept is None or f.accept(_secret_span(m)):
            return True
    return False


def _verify_marker(filters=FILTERS) -> None:
    for f in filters:
        for probe in MARKER_PROBES:
            if _fires(f, probe):
                raise RuntimeError(f"redaction marker matches filter {f.name!r} in {probe!r}")


def _apply(f: SecretFilter, text: str):
    fired = 0

    def replace(m: "re.Match[str]") -> str:
        nonlocal fired
        span = _secret_span(m)
        if f.accept is not None and not f.accept(span):
            return m.group(0)
        fired += 1
        if "secret" in m.re.groupindex and m.group("secret") is not None:
            whole = m.group(0)
            lo = m.start("secret") - m.start()
            hi = m.end("secret") - m.start()
            return whole[:lo] + MARKER + whole[hi:]
        return MARKER

    return f.pattern.sub(replace, text), fired


def find_secrets(text: str) -> List[str]:
    """Names of filters that would still fire on `text` (empty for scrubbed text)."""
    return [f.name for f in FILTERS if _fires(f, text or "")]


def scrub(text: str) -> RedactionResult:
    """
    Redact every secret-shaped span in `text`.

    One pass runs every filter in FILTERS order over the running output. A
    later filter can shorten a span an earlier one already judged (a long
    base64 run losing its hex tail, say), so passes repeat until no filter
    fires. The result therefore never contains a filter match, and scrubbing
    it again returns it unchanged.
    """
    out = text or ""
    counts: Counter = Counter()
    for _ in range(MAX_PASSES):
        for f in FILTERS:
            out, n = _apply(f, out)
            if n:
                counts[f.name] += n
        if not find_secrets(out):
            break
    matches = [RedactionMatch(filter=f.name, count=counts[f.name]) for f in FILTERS if counts[f.name]]
    return RedactionResult(scrubbed=out, matches=matches)


def scrub_text(text: str) -> str:
    return scrub(text).scrubbed


def redact(payload: Any) -> Any:
    """Scrub every string inside a nested JSON-like payload. There is no opt-out."""
    if isinstance(payload, dict):
        return {k: redact(v) for k, v in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [redact(v) for v in payload]
    if isinstance(payload, str):
        return scrub_text(payload)
    return payload


def redaction_summary(results: List[RedactionResult]) -> Dict[str, int]:
    totals: Counter = Counter()
    for r in results:
        for m in r.matches:
            totals[m.filter] += m.count
    return dict(totals)


_verify_marker()
