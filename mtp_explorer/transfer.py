"""Multi-file paste between the local pane and an MTP device.

One :class:`TransferOrchestrator` per pane drives a paste through::

    IDLE -> PREFLIGHT -> (LEGACY_PER_ITEM | STREAMING_BATCH) -> DRAINING -> SUCCESS | FAILED

Items are processed strictly in queue order and the first failing item
stops the batch; items already copied stay copied. DRAINING (progress
indicator teardown plus a directory refresh) runs exactly once on every
path, including preflight rejections.

Usage:
    orchestrator = TransferOrchestrator(device, TransferCallbacks(
        on_progress=render_progress,
        on_error=show_alert,
        on_teardown=reset_taskbar,
        on_refresh=reload_listing,
    ))
    future = orchestrator.paste_async(
        ["/home/me/a.jpg"], "/DCIM", TransferDirection.LOCAL_TO_MTP
    )
"""

from __future__ import annotations

import os
import re
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from mtp_explorer import local
from mtp_explorer.config import settings
from mtp_explorer.domain.models import (
    DeviceType,
    ErrorFlag,
    ProgressEvent,
    ProgressSample,
    ProgressState,
    TransferDirection,
    TransferErrorReport,
    TransferItem,
    TransferPhase,
    TransferProgress,
    TransferQueue,
)
from mtp_explorer.logging import LoggerFactory, ThrottledLogger, operation_context
from mtp_explorer.mtp import commands
from mtp_explorer.mtp.command_runners import (
    EXIT,
    STDERR,
    STDOUT,
    StreamingProcess,
    check_spawned,
    run_cleaned,
)
from mtp_explorer.mtp.device import MtpDevice, parse_size
from mtp_explorer.mtp.exceptions import (
    DeviceVanishedError,
    ExplorerError,
    InvalidArgumentError,
    ListingFailedError,
    SubprocessFailureError,
    TransferFailedError,
)
from mtp_explorer.mtp.progress import (
    advance,
    format_elapsed,
    format_speed,
    parse_progress_line,
    percentage,
)
from mtp_explorer.mtp.sanitizer import (
    clean_junk,
    indicates_no_device,
    is_junk,
)

# Device paths may not contain these once the destination is joined.
ILLEGAL_DESTINATION_CHARACTERS = re.compile(r"[\\:]")


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class TransferCallbacks:
    """Upward hooks into the GUI/store layer. All optional."""

    on_preprocess: Optional[Callable[[str], None]] = None
    on_progress: Optional[Callable[[TransferProgress], None]] = None
    on_error: Optional[Callable[[TransferErrorReport], None]] = None
    on_completed: Optional[Callable[[], None]] = None
    # Draining hooks, always called once per paste.
    on_teardown: Optional[Callable[[], None]] = None
    on_refresh: Optional[Callable[[], None]] = None


@dataclass
class _Totals:
    total_files: int = 0
    total_size: int = 0
    files_sent: int = 0
    completed_bytes: int = 0
    active_file: str = ""
    active_size: int = 0
    active_sent: int = 0
    preprocessed: bool = False


class TransferOrchestrator:
    def __init__(
        self,
        device: Optional[MtpDevice] = None,
        callbacks: Optional[TransferCallbacks] = None,
        *,
        legacy: Optional[bool] = None,
        preprocess: Optional[bool] = None,
        poll_interval: Optional[float] = None,
        clock: Callable[[], float] = _now_ms,
    ):
        self.device = device or MtpDevice()
        self.callbacks = callbacks or TransferCallbacks()
        self._legacy = legacy
        self._preprocess = preprocess
        self._poll_interval = poll_interval
        self._clock = clock
        self._executor: Optional[ThreadPoolExecutor] = None
        self._process: Optional[StreamingProcess] = None
        self._log = LoggerFactory.for_transfer()
        self._reset()

    def _reset(self) -> None:
        self.phase = TransferPhase.IDLE
        self.transitions: list[TransferPhase] = [TransferPhase.IDLE]
        self.attempted: list[str] = []
        self.error: Optional[ExplorerError] = None
        self.state = ProgressState()
        self._totals = _Totals()
        self._start_ms = 0.0
        self._direction: Optional[TransferDirection] = None

    def _enter(self, phase: TransferPhase) -> None:
        self.phase = phase
        self.transitions.append(phase)
        self._log.debug(f"Transfer phase -> {phase.value}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def paste(
        self,
        sources: Optional[Iterable[str]],
        destination_folder: Optional[str],
        direction: TransferDirection,
        storage_id=None,
    ) -> TransferPhase:
        """Copy ``sources`` into ``destination_folder``; block until terminal.

        Returns ``TransferPhase.SUCCESS`` or ``TransferPhase.FAILED``. The
        failure, if any, is kept on :attr:`error` and reported through
        ``on_error``. ``storage_id`` (default: the session's selected
        storage) applies to every CLI call of the paste, listing included.
        Exceptions other than :class:`ExplorerError` are wrapped in a
        process-level :class:`TransferFailedError`.
        """
        self._reset()
        self._direction = direction
        self._log = LoggerFactory.for_transfer(direction=direction.value)
        self._start_ms = self._clock()
        if storage_id is None:
            storage_id = self.device.storage_id
        try:
            with operation_context(
                "paste", direction=direction.value, destination=destination_folder
            ) as log:
                self._log = log
                queue = self._preflight(
                    sources, destination_folder, direction, storage_id
                )
                if self._use_legacy():
                    self._enter(TransferPhase.LEGACY_PER_ITEM)
                    self._run_legacy(queue, direction, storage_id)
                else:
                    self._enter(TransferPhase.STREAMING_BATCH)
                    self._run_streaming(queue, direction, storage_id)
        except ExplorerError as e:
            self.error = e
        except Exception as e:
            self._log.exception(f"Paste aborted by unexpected error: {e}")
            self.error = TransferFailedError(f"Transfer aborted: {e}")
            self.error.__cause__ = e
        finally:
            self._drain()

        if self.error is not None:
            self._enter(TransferPhase.FAILED)
            self._emit_error(self.error)
        else:
            self._enter(TransferPhase.SUCCESS)
            if self.callbacks.on_completed:
                self.callbacks.on_completed()
        return self.phase

    def paste_async(self, *args, **kwargs) -> Future:
        """Run :meth:`paste` on this pane's single worker thread."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="paste"
            )
        return self._executor.submit(self.paste, *args, **kwargs)

    def terminate(self) -> None:
        """Kill the running streaming process, as closing the window would."""
        if self._process is not None:
            self._process.terminate()

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _use_legacy(self) -> bool:
        if self._legacy is not None:
            return self._legacy
        return settings.is_legacy_mode()

    def _use_preprocess(self, direction: TransferDirection) -> bool:
        if self._preprocess is not None:
            return self._preprocess
        return settings.preprocessing_enabled(direction.value)

    def _preflight(
        self,
        sources: Optional[Iterable[str]],
        destination_folder: Optional[str],
        direction: TransferDirection,
        storage_id=None,
    ) -> TransferQueue:
        self._enter(TransferPhase.PREFLIGHT)
        if destination_folder is None or not str(destination_folder).strip():
            raise InvalidArgumentError("Invalid path.", ErrorFlag.INVALID_PATH)
        sources = list(sources or [])
        if not sources:
            raise InvalidArgumentError(
                "No files selected.", ErrorFlag.NO_FILES_SELECTED
            )

        queue = TransferQueue.build(sources, destination_folder, direction)
        if direction.destination_device is DeviceType.MTP:
            for item in queue:
                if not item.destination.strip() or ILLEGAL_DESTINATION_CHARACTERS.search(
                    item.destination
                ):
                    raise InvalidArgumentError(
                        "Invalid file name in the path. \\: characters are not allowed.",
                        ErrorFlag.ILLEGAL_CHARACTERS,
                    )

        self.device.guard.ensure_session()

        self._totals.total_files = len(queue)
        if self._use_preprocess(direction):
            self._run_preprocess(queue, direction, storage_id)
        self._log.info(f"Queued {len(queue)} item(s) for {direction.value}")
        return queue

    def _run_preprocess(
        self, queue: TransferQueue, direction: TransferDirection, storage_id=None
    ) -> None:
        total_files = 0
        total_size = 0
        for item in queue:
            if self.callbacks.on_preprocess:
                self.callbacks.on_preprocess(item.source)
            files, size = self._list_item(item, direction, storage_id)
            total_files += files
            total_size += size
        self._totals.total_files = total_files
        self._totals.total_size = total_size
        self._totals.preprocessed = True

    def _list_item(
        self, item: TransferItem, direction: TransferDirection, storage_id=None
    ) -> tuple[int, int]:
        """Listing step for one item: (file count, total bytes)."""
        if direction is TransferDirection.LOCAL_TO_MTP:
            if not os.path.exists(item.source):
                raise ListingFailedError(item.source)
            try:
                return local.walk_local_tree(item.source)
            except OSError as e:
                raise ListingFailedError(item.source) from e
        try:
            result = self.device.properties(item.source, storage_id=storage_id)
        except SubprocessFailureError as e:
            raise ListingFailedError(item.source, e.result) from e
        return 1, parse_size(result.data) or 0

    def _run_legacy(
        self, queue: TransferQueue, direction: TransferDirection, storage_id=None
    ) -> None:
        interval = self._poll_interval
        if interval is None:
            interval = float(
                settings.get_setting(
                    "legacy_poll_interval_seconds",
                    settings.DEFAULT_LEGACY_POLL_INTERVAL,
                )
            )
        failed_flag = (
            ErrorFlag.UPLOAD_FILE_FAILED
            if direction is TransferDirection.LOCAL_TO_MTP
            else ErrorFlag.DOWNLOAD_FILE_FAILED
        )

        for item in queue:
            self.attempted.append(item.source)
            _files, size = self._list_item(item, direction, storage_id)
            self._begin_file(item.source, size)

            def poll(item=item, size=size):
                sent = 0
                if direction is TransferDirection.MTP_TO_LOCAL:
                    sent = min(local.local_size_on_disk(item.destination), size)
                self._observe(
                    ProgressSample(
                        ProgressEvent.PROGRESS, item.source, sent, size
                    )
                )

            build = (
                commands.put
                if direction is TransferDirection.LOCAL_TO_MTP
                else commands.get
            )
            command = commands.bounded(
                build(item.source, item.destination),
                storage_id=storage_id,
                binary=self.device.binary,
            )
            with self.device.channel.operation(direction.verb):
                result = run_cleaned(command, poll_callback=poll, poll_interval=interval)

            if not result.ok:
                if indicates_no_device(result):
                    self.device.guard.clear(f"{direction.verb}: {result.message}")
                    raise DeviceVanishedError(direction.verb, result.message or "")
                raise TransferFailedError(
                    f"Failed to copy {item.source}: {result.message}",
                    result,
                    failed_flag,
                    item=item.source,
                )
            self._observe(ProgressSample(ProgressEvent.DONE))

    def _run_streaming(
        self, queue: TransferQueue, direction: TransferDirection, storage_id
    ) -> None:
        chain = commands.transfer_chain(queue, direction, storage_id)
        command = commands.streaming(chain, binary=self.device.binary)
        self.attempted.extend(item.source for item in queue)
        raw_lines = ThrottledLogger(LoggerFactory.for_progress(), interval_seconds=1.0)

        failed = False
        stderr_index = 0
        signal_lines: list[str] = []
        stdout_lines: list[str] = []

        with self.device.channel.operation("paste"):
            self._process = StreamingProcess(command).start()
            try:
                for event in self._process.events():
                    if event.kind == STDOUT:
                        stdout_lines.append(event.line)
                        raw_lines.trace("stdout", f"cli: {event.line}")
                        sample = parse_progress_line(event.line)
                        if sample is None:
                            continue
                        if sample.event is ProgressEvent.PROGRESS and (
                            sample.file_path != self._totals.active_file
                        ):
                            self._begin_file(sample.file_path, sample.total_bytes)
                        self._observe(sample)
                    elif event.kind == STDERR:
                        index = stderr_index
                        stderr_index += 1
                        if is_junk(event.line, index):
                            continue
                        signal_lines.append(event.line)
                        if not failed:
                            self._log.error(f"CLI reported: {event.line}")
                            failed = True
                            self._process.terminate()
                    elif event.kind == EXIT:
                        self._log.debug(f"CLI exited with code {event.returncode}")
                        check_spawned(
                            command, event.returncode, "\n".join(signal_lines)
                        )
            finally:
                process, self._process = self._process, None
                process.close()

        if failed:
            # Signal that arrived after the first line is folded into the report.
            raise self._stream_failure(signal_lines, stdout_lines)

    def _stream_failure(
        self, signal_lines: list[str], stdout_lines: list[str]
    ) -> ExplorerError:
        result = clean_junk(
            error="\n".join(signal_lines),
            stdout="\n".join(stdout_lines),
            stderr="\n".join(signal_lines),
        )
        if indicates_no_device(result):
            self.device.guard.clear(f"paste: {result.message}")
            return DeviceVanishedError("paste", result.message or "")
        return TransferFailedError(
            f"Transfer failed: {result.message}", result, ErrorFlag.PROCESS_FAILED
        )

    def _drain(self) -> None:
        self._enter(TransferPhase.DRAINING)
        if self.callbacks.on_teardown:
            self.callbacks.on_teardown()
        if self.callbacks.on_refresh:
            self.callbacks.on_refresh()

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def _begin_file(self, file_path: str, size: int) -> None:
        self._totals.active_file = file_path
        self._totals.active_size = size
        self._totals.active_sent = 0

    def _observe(self, sample: ProgressSample) -> None:
        """Fold one sample into the progress state; emit when the gate opens."""
        totals = self._totals
        if sample.event is ProgressEvent.DONE:
            totals.files_sent += 1
            totals.completed_bytes += totals.active_size
            totals.active_file = ""
            totals.active_size = 0
            totals.active_sent = 0
            self.state, _ = advance(self.state, sample, self._clock())
            return

        totals.active_size = sample.total_bytes
        totals.active_sent = sample.bytes_sent
        self.state, speed = advance(self.state, sample, self._clock())
        if speed is None:
            return
        self._emit_progress(sample, speed)

    def _emit_progress(self, sample: ProgressSample, speed: float) -> None:
        if not self.callbacks.on_progress:
            return
        totals = self._totals
        total_sent = totals.completed_bytes + sample.bytes_sent
        if totals.preprocessed and totals.total_size:
            total_progress = percentage(total_sent, totals.total_size)
        else:
            total_progress = percentage(totals.files_sent, totals.total_files)
        self.callbacks.on_progress(
            TransferProgress(
                elapsed_time=format_elapsed(self.state.curr_timestamp - self._start_ms),
                speed=format_speed(speed),
                speed_bytes=speed,
                active_file_progress=sample.percent,
                current_file=sample.file_path,
                active_file_size=sample.total_bytes,
                active_file_size_sent=sample.bytes_sent,
                total_files=totals.total_files,
                files_sent=totals.files_sent,
                total_file_size=totals.total_size,
                total_file_size_sent=total_sent,
                total_file_progress=total_progress,
                direction=self._direction,
            )
        )

    def _emit_error(self, error: ExplorerError) -> None:
        if not self.callbacks.on_error:
            return
        if isinstance(error, SubprocessFailureError):
            report = TransferErrorReport(
                error=error.result.error or str(error),
                stderr=error.result.stderr,
                data=error.result.data,
                flag=error.flag,
            )
        else:
            report = TransferErrorReport(error=str(error), flag=error.flag)
        self.callbacks.on_error(report)
