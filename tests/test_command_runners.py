"""
Tests for mtp_explorer.mtp.command_runners module.

This test suite covers:
- Bounded runs (output capture, poll callback, nonzero exits)
- Spawn failures (OSError, shell exit codes 126/127)
- Streaming runs (event ordering, exit always last)
- Process group cleanup (terminate, close, abandoned bounded runs)
"""

import io
import signal
import subprocess
import sys
import time
from unittest.mock import Mock

import pytest

from mtp_explorer.mtp import command_runners
from mtp_explorer.mtp.command_runners import (
    EXIT,
    STDERR,
    STDOUT,
    StreamingProcess,
    run_bounded,
    run_cleaned,
    run_streaming,
)
from mtp_explorer.mtp.commands import Command
from mtp_explorer.mtp.exceptions import SpawnError

COMMAND = Command(("mtp-cli", '"pwd"'))


@pytest.fixture
def mock_popen(mocker):
    return mocker.patch("mtp_explorer.mtp.command_runners.subprocess.Popen")


def _bounded_process(stdout="", stderr="", returncode=0):
    process = Mock()
    process.communicate.return_value = (stdout, stderr)
    process.returncode = returncode
    return process


class TestRunBounded:
    """Tests for run_bounded() function."""

    def test_success(self, mock_popen):
        mock_popen.return_value = _bounded_process(stdout="/\n")

        result = run_bounded(COMMAND)

        assert result.stdout == "/\n"
        assert result.error is None
        assert result.returncode == 0
        args, kwargs = mock_popen.call_args
        assert args[0] == 'mtp-cli "pwd"'
        assert kwargs["shell"] is True

    def test_nonzero_exit_uses_stderr(self, mock_popen):
        mock_popen.return_value = _bounded_process(stderr="boom", returncode=1)

        result = run_bounded(COMMAND)

        assert result.error == "boom"
        assert result.stderr == "boom"

    def test_nonzero_exit_without_stderr(self, mock_popen):
        mock_popen.return_value = _bounded_process(returncode=3)

        result = run_bounded(COMMAND)

        assert result.error == "Command failed with exit code 3"

    def test_poll_callback_runs_while_process_is_alive(self, mock_popen):
        process = _bounded_process(stdout="done")
        process.communicate.side_effect = [
            subprocess.TimeoutExpired("mtp-cli", 0.5),
            subprocess.TimeoutExpired("mtp-cli", 0.5),
            ("done", ""),
        ]
        mock_popen.return_value = process
        poll = Mock()

        result = run_bounded(COMMAND, poll_callback=poll, poll_interval=0.5)

        assert poll.call_count == 2
        assert result.stdout == "done"
        process.communicate.assert_called_with(timeout=0.5)

    def test_poll_callback_failure_kills_process_group(self, mock_popen, mocker):
        killpg = mocker.patch("mtp_explorer.mtp.command_runners.os.killpg")
        process = _bounded_process()
        process.pid = 4242
        process.communicate.side_effect = subprocess.TimeoutExpired("mtp-cli", 0.5)
        mock_popen.return_value = process
        poll = Mock(side_effect=RuntimeError("observer crashed"))

        with pytest.raises(RuntimeError, match="observer crashed"):
            run_bounded(COMMAND, poll_callback=poll, poll_interval=0.5)

        killpg.assert_called_once_with(4242, signal.SIGKILL)
        process.wait.assert_called_once()

    def test_spawns_in_new_session(self, mock_popen):
        mock_popen.return_value = _bounded_process()

        run_bounded(COMMAND)

        assert mock_popen.call_args.kwargs["start_new_session"] is True

    def test_no_timeout_without_callback(self, mock_popen):
        process = _bounded_process()
        mock_popen.return_value = process

        run_bounded(COMMAND)

        process.communicate.assert_called_once_with(timeout=None)

    def test_oserror_raises_spawn_error(self, mock_popen):
        mock_popen.side_effect = OSError("No such file or directory")

        with pytest.raises(SpawnError) as exc_info:
            run_bounded(COMMAND)

        assert "No such file or directory" in str(exc_info.value)

    def test_shell_not_found_raises_spawn_error(self, mock_popen):
        mock_popen.return_value = _bounded_process(
            stderr="sh: 1: mtp-cli: not found\n", returncode=127
        )

        with pytest.raises(SpawnError) as exc_info:
            run_bounded(COMMAND)

        assert exc_info.value.reason == "sh: 1: mtp-cli: not found"

    def test_shell_not_executable_without_stderr(self, mock_popen):
        mock_popen.return_value = _bounded_process(returncode=126)

        with pytest.raises(SpawnError) as exc_info:
            run_bounded(COMMAND)

        assert exc_info.value.reason == "permission denied"


class TestRunCleaned:
    """Tests for run_cleaned() function."""

    def test_noise_only_failure_is_ok(self, mock_popen):
        mock_popen.return_value = _bounded_process(
            stdout="/DCIM", stderr="Device::find failed\n", returncode=1
        )

        result = run_cleaned(COMMAND)

        assert result.ok
        assert result.data == "/DCIM"

    def test_signal_survives(self, mock_popen):
        mock_popen.return_value = _bounded_process(
            stderr="Device::find failed\nNo MTP device found\n", returncode=1
        )

        result = run_cleaned(COMMAND)

        assert not result.ok
        assert result.stderr == "No MTP device found"


class TestStreamingProcess:
    """Tests for StreamingProcess and run_streaming()."""

    def _streaming_process(self, stdout, stderr, returncode=0):
        process = Mock()
        process.stdout = io.StringIO(stdout)
        process.stderr = io.StringIO(stderr)
        process.wait.return_value = returncode
        process.returncode = returncode
        process.poll.return_value = returncode
        return process

    def test_events_end_with_exit(self, mock_popen):
        mock_popen.return_value = self._streaming_process(
            ":progress /a.txt 1 2\r\n:done\n", "Selected storage 1\n"
        )

        events = list(run_streaming(COMMAND).events())

        assert events[-1].kind == EXIT
        assert events[-1].returncode == 0
        assert [e.line for e in events if e.kind == STDOUT] == [
            ":progress /a.txt 1 2",
            ":done",
        ]
        assert [e.line for e in events if e.kind == STDERR] == ["Selected storage 1"]

    def test_exit_code_reported(self, mock_popen):
        mock_popen.return_value = self._streaming_process("", "", returncode=1)

        events = list(run_streaming(COMMAND).events())

        assert len(events) == 1
        assert events[0].kind == EXIT
        assert events[0].returncode == 1

    def test_events_before_start_raises(self):
        with pytest.raises(RuntimeError):
            next(StreamingProcess(COMMAND).events())

    def test_terminate_running_process(self, mock_popen, mocker):
        killpg = mocker.patch("mtp_explorer.mtp.command_runners.os.killpg")
        process = self._streaming_process("", "")
        process.pid = 4242
        process.poll.return_value = None
        mock_popen.return_value = process
        streaming = run_streaming(COMMAND)

        streaming.terminate()

        killpg.assert_called_once_with(4242, signal.SIGTERM)
        list(streaming.events())

    def test_terminate_exited_process_is_noop(self, mock_popen, mocker):
        killpg = mocker.patch("mtp_explorer.mtp.command_runners.os.killpg")
        mock_popen.return_value = self._streaming_process("", "")
        streaming = run_streaming(COMMAND)
        list(streaming.events())

        streaming.terminate()

        killpg.assert_not_called()

    def test_terminate_vanished_group(self, mock_popen, mocker):
        mocker.patch(
            "mtp_explorer.mtp.command_runners.os.killpg",
            side_effect=ProcessLookupError,
        )
        process = self._streaming_process("", "")
        process.poll.return_value = None
        mock_popen.return_value = process

        run_streaming(COMMAND).terminate()

    def test_close_before_start_is_noop(self):
        StreamingProcess(COMMAND).close()

    def test_terminate_before_start_is_noop(self):
        StreamingProcess(COMMAND).terminate()

    def test_spawn_failure(self, mock_popen):
        mock_popen.side_effect = FileNotFoundError("mtp-cli")

        with pytest.raises(SpawnError):
            command_runners.run_streaming(COMMAND)


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")
class TestStreamingProcessGroup:
    """Terminating a real shell pipeline reaches the children it forked."""

    def test_terminate_on_stderr_stops_child(self):
        command = Command(
            (
                'echo ":progress /a.txt 1 2";',
                'echo "LIBMTP PANIC: boom" >&2;',
                "sleep 30",
            )
        )
        streaming = run_streaming(command)
        started = time.monotonic()

        events = []
        for event in streaming.events():
            events.append(event)
            if event.kind == STDERR:
                streaming.terminate()

        assert time.monotonic() - started < 10
        assert events[-1].kind == EXIT
        assert events[-1].returncode != 0
        assert (STDERR, "LIBMTP PANIC: boom") in [(e.kind, e.line) for e in events]

    def test_close_escalates_when_sigterm_is_ignored(self):
        command = Command(("trap '' TERM;", "echo ready;", "sleep 30"))
        streaming = run_streaming(command)
        events = streaming.events()
        assert next(events).line == "ready"
        started = time.monotonic()

        streaming.close(kill_timeout=0.5)

        assert time.monotonic() - started < 10
        assert streaming.returncode == -signal.SIGKILL
        assert [e.kind for e in events] == [EXIT]
