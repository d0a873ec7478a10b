"""
Enhanced Logging System for the Huly Storage Bridge
===================================================

Provides coloured, structured logging with per-phase timing for uploads.
IMPORTANT: No emojis in console output (Windows encoding issues).
"""

import logging
import sys
import time
from typing import Optional, Dict, List, TextIO
from contextlib import contextmanager
from colorama import Fore, Style, init

# Initialize colorama for Windows
init(autoreset=True)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Phase definitions
class Phase:
    """Phase constants for the upload pipeline"""
    RESOLVE = "RESOLVE_SOURCE"
    VALIDATE = "VALIDATE_BUFFER"
    CONNECT = "STORAGE_CONNECT"
    WRITE = "BLOB_WRITE"

# Phase colors
PHASE_COLORS = {
    Phase.RESOLVE: Fore.CYAN,
    Phase.VALIDATE: Fore.YELLOW,
    Phase.CONNECT: Fore.MAGENTA,
    Phase.WRITE: Fore.GREEN,
}

# Phase icons (text-based, no emojis for Windows)
PHASE_ICONS = {
    Phase.RESOLVE: "[SRC]",
    Phase.VALIDATE: "[VAL]",
    Phase.CONNECT: "[CON]",
    Phase.WRITE: "[PUT]",
}


def setup_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Configure root logging once for CLI and server entry points.

    Logs go to stderr by default so stdio transports keep stdout clean.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(stream or sys.stderr)],
    )
    # Silence noisy HTTP client loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class TimingTracker:
    """Track timing for phases"""

    def __init__(self):
        self._timings: Dict[str, float] = {}
        self._start_times: Dict[str, float] = {}

    def start(self, key: str):
        self._start_times[key] = time.monotonic()

    def end(self, key: str) -> float:
        """End timing and return elapsed seconds"""
        if key not in self._start_times:
            return 0.0
        elapsed = time.monotonic() - self._start_times.pop(key)
        self._timings[key] = elapsed
        return elapsed

    def get(self, key: str) -> Optional[float]:
        return self._timings.get(key)

    def get_all(self) -> Dict[str, float]:
        return self._timings.copy()


class PhaseLogger:
    """
    Logger with phase tracking for a single upload

    Usage:
        phase_logger = PhaseLogger(upload_label="report.pdf", verbose=True)

        with phase_logger.phase(Phase.RESOLVE, sub_label="filePath"):
            phase_logger.info("Reading local file...")
    """

    def __init__(
        self,
        upload_label: str,
        verbose: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        self.upload_label = upload_label
        self.verbose = verbose
        self.logger = logger or logging.getLogger(__name__)
        self.timing_tracker = TimingTracker()
        self._current_phase: Optional[str] = None
        self._phase_stack: List[Optional[str]] = []

    @contextmanager
    def phase(self, phase_name: str, sub_label: Optional[str] = None):
        """Context manager for phase tracking with automatic timing"""
        self._enter_phase(phase_name, sub_label)
        failed = False
        try:
            yield self
        except BaseException:
            failed = True
            raise
        finally:
            self._exit_phase(phase_name, failed)

    def _enter_phase(self, phase_name: str, sub_label: Optional[str] = None):
        self._phase_stack.append(self._current_phase)
        self._current_phase = phase_name
        self.timing_tracker.start(phase_name)

        if self.verbose:
            color = PHASE_COLORS.get(phase_name, Fore.WHITE)
            icon = PHASE_ICONS.get(phase_name, "[???]")
            sub_str = f" - {sub_label}" if sub_label else ""
            self.logger.info(f"{color}{'=' * 60}{Style.RESET_ALL}")
            self.logger.info(f"{color}{icon} {phase_name} [{self.upload_label}]{sub_str}{Style.RESET_ALL}")

    def _exit_phase(self, phase_name: str, failed: bool):
        elapsed = self.timing_tracker.end(phase_name)
        color = PHASE_COLORS.get(phase_name, Fore.WHITE)
        icon = PHASE_ICONS.get(phase_name, "[???]")
        status = "FAILED" if failed else "COMPLETED"

        if failed:
            self.logger.warning(
                f"{Fore.RED}{icon} {phase_name} {status} for {self.upload_label} "
                f"(Elapsed: {elapsed:.3f}s){Style.RESET_ALL}"
            )
        elif self.verbose:
            self.logger.info(
                f"{color}{icon} {phase_name} {status} (Elapsed: {elapsed:.3f}s){Style.RESET_ALL}"
            )
            self.logger.info(f"{color}{'-' * 60}{Style.RESET_ALL}")
        else:
            self.logger.debug(f"{icon} {phase_name} {status} for {self.upload_label} in {elapsed:.3f}s")

        self._current_phase = self._phase_stack.pop() if self._phase_stack else None

    def info(self, message: str):
        """Log info message with current phase context"""
        if self._current_phase:
            color = PHASE_COLORS.get(self._current_phase, Fore.WHITE)
            icon = PHASE_ICONS.get(self._current_phase, "[???]")
            self.logger.info(f"{color}{icon}{Style.RESET_ALL} {message}")
        else:
            self.logger.info(message)

    def debug(self, message: str):
        """Log debug message (only if verbose)"""
        if self.verbose:
            self.logger.debug(f"{Fore.WHITE}{Style.DIM}{message}{Style.RESET_ALL}")

    def log_timing_summary(self):
        """Log the per-phase timing of this upload (only if verbose)"""
        if not self.verbose:
            return
        timings = self.timing_tracker.get_all()
        if not timings:
            return
        total_time = 0.0
        for phase_name, elapsed in timings.items():
            color = PHASE_COLORS.get(phase_name, Fore.WHITE)
            self.logger.info(f"{color}{phase_name:20s} {elapsed:8.3f}s{Style.RESET_ALL}")
            total_time += elapsed
        self.logger.info(f"{Fore.WHITE}{Style.BRIGHT}TOTAL TIME: {total_time:.3f}s{Style.RESET_ALL}")


# Convenience functions
def create_phase_logger(upload_label: str, verbose: bool = False) -> PhaseLogger:
    """Create a new PhaseLogger instance"""
    return PhaseLogger(upload_label=upload_label, verbose=verbose)
