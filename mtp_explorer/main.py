import argparse
import sys

from mtp_explorer.domain.models import TransferDirection, TransferProgress
from mtp_explorer.logging import get_logger, setup_logging
from mtp_explorer.mtp.device import MtpDevice
from mtp_explorer.transfer import TransferCallbacks, TransferOrchestrator


def format_progress_line(progress: TransferProgress) -> str:
    line = (
        f"{int(progress.active_file_progress)}% of {progress.current_file} | "
        f"Elapsed: {progress.elapsed_time} | {progress.speed}/sec"
    )
    if progress.total_file_size:
        line += (
            f" | {progress.files_sent}/{progress.total_files} files"
            f" {int(progress.total_file_progress)}%"
        )
    return line


def _report(device: MtpDevice) -> int:
    result = device.verbose_report()
    if result.data:
        print(result.data.rstrip())
    if not result.ok:
        print(result.message, file=sys.stderr)
        return 1
    return 0


def _paste(device: MtpDevice, args) -> int:
    log = get_logger(source="cli")

    def on_error(report):
        print(f"Error: {report.error}", file=sys.stderr)

    callbacks = TransferCallbacks(
        on_preprocess=lambda path: print(f"Processing {path}"),
        on_progress=lambda progress: print(format_progress_line(progress)),
        on_error=on_error,
        on_completed=lambda: print("Transfer complete"),
    )
    orchestrator = TransferOrchestrator(
        device,
        callbacks,
        legacy=True if args.legacy else None,
        preprocess=True if args.preprocess else None,
    )
    phase = orchestrator.paste(
        args.sources,
        args.dest,
        TransferDirection(args.direction),
        storage_id=args.storage,
    )
    log.debug(f"Paste finished in phase {phase.value}")
    return 0 if orchestrator.error is None else 1


def main(argv=None):
    parser = argparse.ArgumentParser(description="MTP device file explorer core")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Log every CLI output line")
    parser.add_argument("--cli", default=None, help="Path to the mtp-cli binary")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("report", help="Run the verbose device probe")

    paste = subparsers.add_parser("paste", help="Copy files to or from the device")
    paste.add_argument(
        "--direction",
        required=True,
        choices=[d.value for d in TransferDirection],
    )
    paste.add_argument("--dest", required=True, help="Destination folder")
    paste.add_argument("--storage", default=None, help="Device storage id")
    paste.add_argument("--legacy", action="store_true", help="Copy one item per CLI call")
    paste.add_argument(
        "--preprocess",
        action="store_true",
        help="Walk sources first to report total progress",
    )
    paste.add_argument("sources", nargs="+")

    args = parser.parse_args(argv)
    setup_logging(debug=args.debug, trace=args.trace)

    device = MtpDevice(binary=args.cli)
    if args.command == "report":
        return _report(device)
    return _paste(device, args)


if __name__ == "__main__":
    sys.exit(main())
