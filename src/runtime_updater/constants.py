"""Centralized constants for the runtime updater."""

# Release streams
LEGACY_STREAM = "8"
SUPPORTED_STREAMS = ("8", "11", "17", "21", "25")

# Release feed and assets
FEED_REPOSITORY_TEMPLATE = "temurin{stream}-binaries"
INSTALLER_EXTENSION = ".msi"
CHECKSUM_SUFFIX = ".sha256.txt"
GITHUB_ACCEPT_HEADER = "application/vnd.github+json"

# Executables that keep an installed runtime in use
RUNTIME_PROCESS_NAMES = ("java.exe", "javaw.exe", "javaws.exe", "jp2launcher.exe")

# In-use process wait (seconds)
PROCESS_POLL_INTERVAL_SECONDS = 10
PROCESS_WAIT_NOTICE_SECONDS = 60

# Windows Installer
MSIEXEC = "msiexec"
EXIT_SUCCESS = 0
RESTART_PENDING_EXIT_CODES = frozenset({3010, 1641, 3011})
BASE_INSTALL_FEATURES = (
    "FeatureMain",
    "FeatureEnvironment",
    "FeatureJarFileRunWith",
    "FeatureJavaHome",
)
DEVELOPMENT_INSTALL_FEATURES = ("FeatureDevTools",)

# Installer log scanning
INSTALLER_LOG_TAIL_LINES = 400
INSTALLER_LOG_MAX_MATCHES = 25

# Downloads
DOWNLOAD_CHUNK_SIZE = 1024 * 1024
