"""Validated wrapper around ``subprocess.run`` for launching external viewers."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess  # noqa: S404  # nosec B404 - arguments validated below
from collections.abc import Mapping, MutableMapping, Sequence

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = float(os.getenv("CHTOP_SUBPROC_TIMEOUT", "86400"))


class SubprocessError(RuntimeError):
    """Raised when a subprocess call times out, fails to start or exits non-zero."""


def _merge_env(env: Mapping[str, str] | None) -> MutableMapping[str, str] | None:
    if env is None:
        return None
    merged: dict[str, str] = dict(os.environ)
    merged.update(env)
    return merged


def _validate_args(args: Sequence[str]) -> list[str]:
    if not isinstance(args, list | tuple) or not args:
        raise ValueError("args must be a non-empty sequence of strings")
    if not all(isinstance(arg, str) for arg in args):
        raise ValueError("all subprocess arguments must be strings")
    return list(args)


def _format_command(args: Sequence[str]) -> str:
    return " ".join(shlex.quote(part) for part in args)


def safe_run(
    args: Sequence[str],
    *,
    timeout: float | None = None,
    check: bool = True,
    env: Mapping[str, str] | None = None,
) -> int:
    """Run an interactive command attached to the terminal and return its exit code."""

    command = _validate_args(args)
    effective_timeout = _DEFAULT_TIMEOUT if timeout is None else float(timeout)
    cmd_repr = _format_command(command)
    logger.debug("Executing command: %s (timeout=%s)", cmd_repr, effective_timeout)
    try:
        completed = subprocess.run(  # noqa: S603  # nosec B603 - validated via _validate_args
            command,
            env=_merge_env(env),
            timeout=effective_timeout,
            check=check,
        )
    except subprocess.TimeoutExpired as exc:
        logger.warning("Command timed out after %.1fs: %s", effective_timeout, cmd_repr)
        raise SubprocessError(
            f"Command timed out after {effective_timeout:.1f}s: {cmd_repr}"
        ) from exc
    except subprocess.CalledProcessError as exc:
        logger.warning("Command failed (exit %s): %s", exc.returncode, cmd_repr)
        raise SubprocessError(f"Command failed (exit {exc.returncode}): {cmd_repr}") from exc
    except OSError as exc:
        logger.error("Failed to spawn process %s: %s", cmd_repr, exc)
        raise SubprocessError(f"Cannot run {cmd_repr}: {exc}") from exc
    if completed.returncode != 0:
        logger.warning("Command exited with code %s: %s", completed.returncode, cmd_repr)
    else:
        logger.debug("Command succeeded: %s", cmd_repr)
    return completed.returncode


__all__ = ["SubprocessError", "safe_run"]
