"""Unattended updater for installed Java runtime distributions.

Keeps locally installed Temurin JRE/JDK streams on the latest upstream
release of their own major version: resolve → fetch + verify → install.
"""

__version__ = "0.1.0"
