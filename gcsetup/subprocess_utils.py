from __future__ import annotations

import contextlib
import itertools
import os
import shlex
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from textwrap import shorten
from typing import Iterable, Sequence

import click

from .logging_utils import get_logger


logger = get_logger(__name__)


REDACTED = "****"

# create 실패 중 '이미 존재함' 으로 간주할 gcloud/gh 출력
_ALREADY_EXISTS_MARKERS = ("already exists", "ALREADY_EXISTS")


class CommandError(RuntimeError):
    """외부 명령(gcloud/gh) 실행 실패."""

    def __init__(
        self,
        message: str,
        *,
        cmd: Sequence[str] = (),
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode
        self.output = output

    @property
    def already_exists(self) -> bool:
        return any(marker in self.output for marker in _ALREADY_EXISTS_MARKERS)


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


# 진행 표시 기본값 (GCSETUP_SHOW_PROGRESS / GCSETUP_PROGRESS_IDLE_SECONDS 로 변경)
DEFAULT_PROGRESS_IDLE_SECONDS = 2.0

_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
_TRUTHY = {"1", "true", "yes", "y", "on"}


def _progress_defaults() -> tuple[bool, float]:
    show = os.getenv("GCSETUP_SHOW_PROGRESS", "1").strip().lower() in _TRUTHY

    idle = DEFAULT_PROGRESS_IDLE_SECONDS
    raw_idle = os.getenv("GCSETUP_PROGRESS_IDLE_SECONDS")
    if raw_idle:
        try:
            idle = float(raw_idle)
        except ValueError:
            logger.debug("GCSETUP_PROGRESS_IDLE_SECONDS 값을 무시합니다: %r", raw_idle)
    return show, idle


def _elapsed_text(seconds: float) -> str:
    if seconds >= 60:
        return f"{int(seconds // 60)}m{int(seconds % 60):02d}s"
    return f"{seconds:0.1f}s"


class _IdleProgressIndicator:
    """
    명령이 idle_seconds 안에 끝나지 않으면 stream 에 스피너와 경과시간을 그린다.
    (gcloud projects create 처럼 한참 출력이 없는 명령용)
    """

    def __init__(self, message: str, stream, *, idle_seconds: float, interval: float = 0.12) -> None:  # noqa: ANN001
        self.message = message
        self.stream = stream
        self.idle_seconds = max(idle_seconds, 0.0)
        self.interval = max(interval, 0.02)
        self._done = threading.Event()
        self._worker: threading.Thread | None = None
        self._width = 0

    def _loop(self) -> None:
        started = time.monotonic()
        if self._done.wait(self.idle_seconds):
            return
        for frame in itertools.cycle(_FRAMES):
            if self._done.is_set():
                break
            line = f"{frame} {self.message}  {_elapsed_text(time.monotonic() - started)}"
            self._width = max(self._width, len(line))
            self.stream.write(f"\r{line}")
            self.stream.flush()
            self._done.wait(self.interval)

    def __enter__(self) -> "_IdleProgressIndicator":
        self._worker = threading.Thread(target=self._loop, daemon=True)
        self._worker.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self._done.set()
        if self._worker is not None:
            self._worker.join(timeout=1.0)
        if self._width:
            # 스피너 줄을 지운다
            self.stream.write("\r" + " " * self._width + "\r")
            self.stream.flush()


def format_command(cmd: Sequence[str], redact: Iterable[str] = ()) -> str:
    """사람이 읽을(그리고 그대로 복사해 실행할) 수 있는 명령 문자열. redact 값은 가린다."""
    secrets = [s for s in redact if s]
    parts: list[str] = []
    for arg in cmd:
        for secret in secrets:
            arg = arg.replace(secret, REDACTED)
        parts.append(shlex.quote(arg))
    return " ".join(parts)


def _redact_text(text: str, redact: Iterable[str]) -> str:
    for secret in redact:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


def run_command(
    cmd: Sequence[str],
    *,
    dry_run: bool = False,
    input_text: str | None = None,
    redact: Sequence[str] = (),
    timeout: float | None = 900.0,
    spinner_message: str | None = None,
    show_progress: bool | None = None,
    progress_idle_seconds: float | None = None,
    progress_interval: float = 0.12,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    - dry_run=True : 실행하지 않고 `[dry-run] <명령>` 만 출력
    - stdout/stderr 는 캡처하고, 실패 시 요약을 CommandError 에 담는다
    - redact / input_text 의 값은 로그와 에러 메시지에 남기지 않는다
    """
    hidden = list(redact)
    if input_text:
        hidden.append(input_text)
    shown = format_command(cmd, hidden)

    if dry_run:
        click.echo(f"  [dry-run] {shown}")
        return RunResult(returncode=0, stdout="", stderr="")

    logger.info("명령 실행: %s", shown)

    show, idle = _progress_defaults()
    if show_progress is not None:
        show = show_progress
    if progress_idle_seconds is not None:
        idle = progress_idle_seconds

    progress = contextlib.nullcontext()
    if show and sys.stderr.isatty():
        progress = _IdleProgressIndicator(
            spinner_message or shorten(shown, width=72, placeholder="…"),
            sys.stderr,
            idle_seconds=idle,
            interval=progress_interval,
        )

    try:
        with progress:
            result = subprocess.run(  # noqa: S603
                list(cmd),
                check=True,
                capture_output=True,
                text=True,
                timeout=timeout,
                input=input_text,
            )
    except FileNotFoundError as e:
        raise CommandError(
            f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (gcloud/gh 가 설치되어 있는지 확인하세요)",
            cmd=cmd,
        ) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {shown}", cmd=cmd) from e
    except subprocess.CalledProcessError as e:
        raise _failure(e, shown, hidden) from e

    out = _redact_text(result.stdout.strip(), hidden)
    err = _redact_text(result.stderr.strip(), hidden)
    if out:
        logger.debug("명령 stdout: %s", shorten(out, width=2000))
    if err:
        logger.debug("명령 stderr: %s", shorten(err, width=2000))
    return RunResult(result.returncode, result.stdout, result.stderr)


def _failure(e: subprocess.CalledProcessError, shown: str, hidden: Sequence[str]) -> CommandError:
    # stderr, stdout 순으로 합친다
    output = "\n".join(
        text for text in (_redact_text((s or "").strip(), hidden) for s in (e.stderr, e.stdout)) if text
    )
    message = f"명령 실행 실패: {shown} (exit={e.returncode})"
    if output:
        message += "\n" + shorten(output, width=2000)
    return CommandError(message, cmd=e.cmd, returncode=e.returncode, output=output)


def probe(cmd: Sequence[str], *, timeout: float | None = 120.0) -> bool:
    """
    describe/status 류 명령을 조용히 실행하여 성공 여부만 돌려준다.
    명령 자체가 없으면 CommandError.
    """
    logger.debug("상태 확인: %s", format_command(cmd))
    try:
        proc = subprocess.run(  # noqa: S603
            list(cmd),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise CommandError(f"필요한 명령을 찾을 수 없습니다: {cmd[0]}", cmd=cmd) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(f"상태 확인이 {timeout}초 안에 끝나지 않았습니다: {format_command(cmd)}", cmd=cmd) from e
    return proc.returncode == 0


def ensure_resource(
    label: str,
    describe_cmd: Sequence[str],
    create_cmd: Sequence[str],
    *,
    dry_run: bool = False,
) -> bool:
    """
    describe 가 성공하면 건너뛰고, 실패하면 create 한다.

    create 가 'already exists' 로 실패하면(권한 때문에 describe 만 실패한 경우 등)
    경고만 남기고 계속한다. 새로 생성했으면 True.
    """
    if dry_run:
        run_command(create_cmd, dry_run=True)
        return False

    if probe(describe_cmd):
        logger.info("이미 존재합니다: %s", label)
        return False

    logger.info("생성합니다: %s", label)
    try:
        run_command(create_cmd)
    except CommandError as e:
        if e.already_exists:
            logger.warning("이미 존재하는 것으로 보고 계속합니다: %s", label)
            return False
        raise
    logger.info("생성 완료: %s", label)
    return True
