"""Command Parser - Splits shell commands into argv and extracts side inputs."""

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from agentgate.telemetry.logger import get_logger

logger = get_logger(__name__)

# Extensions that mark an argument as a file even without a separator
FILE_EXTENSIONS = (
    ".txt", ".json", ".js", ".jsx", ".ts", ".tsx", ".md",
    ".py", ".sh", ".yaml", ".yml", ".toml", ".ini", ".cfg",
    ".html", ".css", ".lock", ".log", ".csv", ".xml",
)

# Hosts implied by package managers that download from a registry
REGISTRY_HOSTS = {
    "npm": "registry.npmjs.org",
    "npx": "registry.npmjs.org",
    "pnpm": "registry.npmjs.org",
    "yarn": "registry.yarnpkg.com",
    "pip": "pypi.org",
    "pip3": "pypi.org",
}

_PATH_PREFIX = re.compile(r"^(\.{0,2}/|~/|[A-Za-z]:[\\/])")
_URL_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
_URL_HOST = re.compile(r"https?://([^/\s:'\"]+)", re.IGNORECASE)
_PACKAGE_MANAGER = re.compile(
    r"(?:^|[\s;&|(])(" + "|".join(re.escape(m) for m in REGISTRY_HOSTS) + r")(?=\s|$)",
    re.IGNORECASE,
)

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing a raw command.

    Attributes:
        command: The raw command string
        success: Whether parsing produced a usable argv
        argv: Quote/escape-resolved argument vector
        error: Why parsing failed (only when success is False)
    """

    command: str
    success: bool
    argv: tuple[str, ...] = field(default_factory=tuple)
    error: Optional[str] = None

    @property
    def base_command(self) -> Optional[str]:
        """First argv token, if any."""
        return self.argv[0] if self.argv else None


def parse_command(command: str) -> ParseResult:
    """Parse a shell command into an argv tuple.

    Handles single and double quotes plus backslash escaping outside
    single quotes. An unclosed quote fails the parse.

    Args:
        command: Raw command string

    Returns:
        ParseResult with argv or an error
    """
    if not isinstance(command, str):
        return ParseResult(command=str(command), success=False, error="Invalid command")

    trimmed = command.strip()
    if not trimmed:
        return ParseResult(command=command, success=False, error="Empty command")

    argv: list[str] = []
    current: list[str] = []
    in_single = False
    in_double = False
    escaped = False

    for char in trimmed:
        if escaped:
            current.append(char)
            escaped = False
            continue

        if char == "\\" and not in_single:
            escaped = True
            continue

        if char == "'" and not in_double:
            in_single = not in_single
            continue

        if char == '"' and not in_single:
            in_double = not in_double
            continue

        if char.isspace() and not in_single and not in_double:
            if current:
                argv.append("".join(current))
                current = []
            continue

        current.append(char)

    if in_single or in_double:
        quote = "single" if in_single else "double"
        logger.debug("Command parse failed", command=trimmed, quote=quote)
        return ParseResult(command=command, success=False, error=f"Unclosed {quote} quote")

    # Dangling backslash at end of input is kept literally
    if escaped:
        current.append("\\")

    if current:
        argv.append("".join(current))

    if not argv:
        return ParseResult(command=command, success=False, error="No command found")

    return ParseResult(command=command, success=True, argv=tuple(argv))


def looks_like_path(arg: str) -> bool:
    """Heuristic check whether a non-flag argument names a filesystem path."""
    if arg in (".", "..", "~"):
        return True
    if _URL_PREFIX.match(arg):
        return False
    if _PATH_PREFIX.match(arg) or "/" in arg or "\\" in arg:
        return True
    return arg.lower().endswith(FILE_EXTENSIONS)


def extract_paths(argv: Sequence[str]) -> list[str]:
    """Extract arguments that look like filesystem paths.

    The command name itself and bare flags are skipped. For flags of the
    form ``--opt=value`` the value is checked, so ``--target-directory=/etc``
    yields ``/etc``.

    Args:
        argv: Parsed argument vector

    Returns:
        Candidate paths in argv order
    """
    paths = []
    for arg in argv[1:]:
        if arg.startswith("-"):
            _, sep, arg = arg.partition("=")
            if not sep or not arg:
                continue
        if looks_like_path(arg):
            paths.append(arg)
    return paths


def extract_domains(command: str) -> list[str]:
    """Extract network domains a command is likely to contact.

    Collects hosts of http(s) URLs and adds the registry host of any
    package manager the command invokes.

    Args:
        command: Raw command string

    Returns:
        Unique domains in order of first appearance
    """
    domains: list[str] = []

    for match in _URL_HOST.finditer(command):
        host = match.group(1).lower()
        if host and host not in domains:
            domains.append(host)

    for match in _PACKAGE_MANAGER.finditer(command):
        registry = REGISTRY_HOSTS[match.group(1).lower()]
        if registry not in domains:
            domains.append(registry)

    return domains


def _to_base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def hash_command(argv: Sequence[str], cwd: str) -> str:
    """Hash argv and cwd for once-approval deduplication.

    FNV-1a over the UTF-16 code units of ``"|".join(argv) + "@" + cwd``.
    Not a security boundary.

    Args:
        argv: Parsed argument vector
        cwd: Working directory the command runs in

    Returns:
        Base-36 hash string
    """
    data = f"{'|'.join(argv)}@{cwd}".encode("utf-16-le")

    h = _FNV_OFFSET
    for i in range(0, len(data), 2):
        h ^= data[i] | (data[i + 1] << 8)
        h = (h * _FNV_PRIME) & 0xFFFFFFFF

    # Match signed 32-bit semantics before taking the magnitude
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))
