"""
notify.py — Terminal and Discord output for serious block findings.
"""
from __future__ import annotations

import os
import sys
from typing import Callable, Optional

import requests

from block_check import BlockCheck

DISCORD_MAX_LEN = 2000


class ConfigError(RuntimeError):
    pass


class NotificationError(RuntimeError):
    pass


class DiscordWebhook:
    def __init__(self, url: str, timeout: int = 10):
        self.url = url
        self.timeout = timeout

    def __call__(self, msg: str) -> None:
        if len(msg) > DISCORD_MAX_LEN:
            msg = msg[: DISCORD_MAX_LEN - 3] + "..."
        try:
            r = requests.post(self.url, json={"content": msg}, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(f"Discord webhook error: {e}") from e


def short_message(check: BlockCheck) -> Optional[str]:
    """One-line alert when the only finding is a 0-effective-gas-price bundle."""
    if len(check.errors) == 1 and check.has_bundle_with_0_effective_gas_price:
        return check.sprint_header(markdown=True) + " - Error: " + check.errors[0]
    return None


class NotificationSink:
    def __init__(self, silent: bool = False, post: Optional[Callable[[str], None]] = None):
        self.silent = silent
        self.post = post
        self.sent = 0

    @classmethod
    def from_env(cls, enabled: bool, silent: bool = False, timeout: int = 10) -> "NotificationSink":
        if not enabled:
            return cls(silent=silent)
        url = os.getenv("DISCORD_WEBHOOK", "")
        if not url:
            raise ConfigError("No DISCORD_WEBHOOK environment variable found!")
        return cls(silent=silent, post=DiscordWebhook(url, timeout=timeout))

    def progress(self, line: str) -> None:
        """Per-block terminal output, suppressed in silent mode."""
        if not self.silent:
            print(line)

    @property
    def enabled(self) -> bool:
        return self.post is not None

    def report(self, check: BlockCheck) -> None:
        """Print the full report (unless silent) and post an alert for a block with serious findings."""
        if not self.silent:
            print(check.sprint(markdown=False))

        if self.post is None:
            return
        msg = short_message(check) or check.sprint(markdown=True)
        try:
            self.post(msg)
            self.sent += 1
        except NotificationError as e:
            print(f"⚠️ {e}", file=sys.stderr)
