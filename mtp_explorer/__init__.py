"""Dual-pane file explorer core for local disks and MTP devices.

The heavy lifting lives in :mod:`mtp_explorer.mtp` (escaping, subprocess
runners, output sanitising, progress parsing, session handling) and
:mod:`mtp_explorer.transfer` (the multi-file paste state machine).
"""

from .__version__ import __version__


__all__ = ["__version__"]
