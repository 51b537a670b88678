"""Application-wide constants."""

APP_NAME = "envx"

# Environment variable that overrides the application home directory.
HOME_ENV_VAR = "ENVX_HOME"

PROFILES_FILE = "profiles.json"
SNAPSHOTS_DIR = "snapshots"
SETTINGS_FILE = "settings.json"

PROJECT_DIR = ".envx"
PROJECT_CONFIG_FILE = "config.yaml"
PROJECT_GITIGNORE = "local/\n*.local.yaml\n"

# Registry locations of the persistent environment on Windows.
USER_ENV_KEY = "Environment"
SYSTEM_ENV_KEY = r"System\CurrentControlSet\Control\Session Manager\Environment"

HISTORY_LIMIT = 1000

CHANGE_LOG_LIMIT = 1000
# Fraction of the change log dropped when it overflows.
CHANGE_LOG_EVICT_RATIO = 0.1

DEBOUNCE_MS = 300
SETTLE_SECONDS = 0.05
EVENT_POLL_SECONDS = 0.1
MONITOR_INTERVAL_SECONDS = 1.0

WATCH_PATTERNS: list[str] = ["*.env", ".env", ".env.*", "*.yaml", "*.yml", "*.json"]

SCAN_IGNORE: list[str] = [
    ".git",
    "node_modules",
    "target",
    ".venv",
    "__pycache__",
    "dist",
    "build",
    ".envx",
    "vendor",
    ".cargo",
]
MAX_SCAN_FILE_SIZE = 10_000_000

SHELL_DENY: frozenset[str] = frozenset(
    {
        "@", "*", "#", "?", "-", "$", "!", "_",
        "PPID", "PWD", "OLDPWD", "REPLY", "UID", "EUID", "GROUPS",
        "SHLVL", "RANDOM", "SECONDS", "LINENO", "HISTCMD", "FUNCNAME",
        "PIPESTATUS", "IFS",
    }
)  # fmt: skip
BATCH_DENY: frozenset[str] = frozenset({"CD", "DATE", "TIME", "RANDOM", "ERRORLEVEL"})
MAKE_DENY: frozenset[str] = frozenset(
    {
        "MAKE", "MAKEFLAGS", "MAKECMDGOALS", "CURDIR", "SHELL",
        "MAKEFILE_LIST", "MAKEFILES", "VPATH", "SUFFIXES",
    }
)  # fmt: skip

STRICT_NAME_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"

EXIT_FAILURE = 1
EXIT_VALIDATION_FAILED = 3
