from __future__ import annotations

import logging
import os
import shlex
from urllib.parse import quote

logger = logging.getLogger(__name__)


def _redact_url(url: str) -> str:
    if "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    if "@" not in rest:
        return url
    _creds, host = rest.split("@", 1)
    return f"{scheme}://***:***@{host}"


def _inject_credentials(url: str, username: str, password: str | None) -> str:
    """Add `user:password@` to a URL that carries no credentials yet."""
    if "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    if "@" in rest.split("/", 1)[0]:
        return url
    userinfo = quote(username, safe="")
    if password:
        userinfo = f"{userinfo}:{quote(password, safe='')}"
    return f"{scheme}://{userinfo}@{rest}"


def _format_cmd(cmd: list[str]) -> str:
    try:
        return shlex.join([str(x) for x in cmd])
    except Exception as exc:
        logger.warning("Failed to format command with shlex.join: %s", exc, exc_info=True)
        return " ".join([str(x) for x in cmd])


def _redact_cmd(cmd: list[str]) -> list[str]:
    safe_cmd = list(cmd)
    for idx, arg in enumerate(safe_cmd[:-1]):
        if arg == "-i":
            safe_cmd[idx + 1] = _redact_url(safe_cmd[idx + 1])
    return safe_cmd


def _signal_process_group(pid: int, sig: int) -> bool:
    """Best-effort process-group signal for spawned ffmpeg trees."""
    if not hasattr(os, "killpg"):
        return False
    try:
        pgid = os.getpgid(pid)
    except OSError:
        return False
    try:
        os.killpg(pgid, sig)
        return True
    except OSError:
        return False
