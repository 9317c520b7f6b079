"""
Minimal logging context for fescue.
Single place to control all output: screen + file, with flush.
"""
import json
import os
from pathlib import Path
from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.text import Text

_PREFIX_STYLES = {
    "[WARNING] ": "yellow",
    "[ERROR] ": "red",
    "[INFO] ": "cyan",
}


class FescueLogger:
    """Minimal logger: print to screen + file, always flush"""

    def __init__(self, log_file: Optional[Path] = None, debug: bool = False):
        self.log_file = log_file
        self._file_handle = None
        self._start_time = datetime.now()
        self.debug_mode = debug
        self._rate_limit_note_indexers: set[str] = set()
        self._console = Console(highlight=False, soft_wrap=True)

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = open(log_file, 'w', buffering=1, encoding='utf-8')  # Line buffered, UTF-8

            from fescue import __version__
            self.log(f"({self._start_time.strftime('%H:%M:%S')}  Started fescue {__version__})")

    def log(self, msg: str, prefix: str = ""):
        """Log to screen and file"""
        self._console.print(self._screen_text(msg, prefix))

        if self._file_handle:
            self._file_handle.write(f"{prefix}{msg}\n")
            self._file_handle.flush()
            os.fsync(self._file_handle.fileno())

    def _screen_text(self, msg: str, prefix: str = "") -> Text:
        # Text, not markup: indexer titles routinely contain [brackets].
        text = Text()
        if prefix:
            text.append(prefix, style=_PREFIX_STYLES.get(prefix, "grey50"))
        text.append(msg)
        return text

    def info(self, msg: str):
        """Info message"""
        self.log(msg)

    def warning(self, msg: str):
        """Warning message"""
        self.log(msg, "[WARNING] ")

    def error(self, msg: str):
        """Error message"""
        self.log(msg, "[ERROR] ")

    def debug(self, msg: str):
        """Debug message (only shown in debug mode)"""
        if self.debug_mode:
            timestamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
            self.log(msg, f"[{timestamp}] [DEBUG] ")

    def api_wait(self, indexer: str, seconds: float):
        """Log API rate limiting wait"""
        _ = seconds
        indexer_key = indexer.upper()
        if indexer_key in self._rate_limit_note_indexers:
            return
        self._rate_limit_note_indexers.add(indexer_key)
        self.log(
            f"API rate limiting active for {indexer_key}; request pacing is enabled.",
            "[INFO] ",
        )

    def api_wait_debug(self, indexer: str, seconds: float):
        """Log API wait details (debug mode only)."""
        self.debug(f"Rate limiting detail: waiting {seconds:.3f}s before next {indexer} API call")

    def api_retry(self, indexer: str, attempt: int, max_attempts: int, delay: int, reason: str = "server timeout"):
        """Log API retry"""
        self.log(f"{indexer} {reason}. Retrying in {delay}s... (attempt {attempt}/{max_attempts})", "[WARNING] ")

    def api_failed(self, indexer: str, max_attempts: int):
        """Log API failure"""
        self.log(f"{indexer} server not responding after {max_attempts} attempts. Aborting.", "[ERROR] ")

    def api_request(self, method: str, url: str, params: Optional[dict] = None):
        """Log API request (debug mode only)"""
        if self.debug_mode:
            timestamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
            self.log(f"API Request: {method} {url}", f"[{timestamp}] ")
            if params:
                self.log(f"  Params: {json.dumps(params, indent=2)}", f"[{timestamp}] ")

    def api_response(self, status: int, body: str, elapsed_ms: float):
        """Log API response (debug mode only)"""
        if self.debug_mode:
            timestamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
            self.log(f"API Response ({elapsed_ms:.0f}ms): Status {status}", f"[{timestamp}] ")
            if body:
                if len(body) > 5000:
                    body = body[:5000] + "\n  ... (truncated)"
                self.log(f"  Body: {body}", f"[{timestamp}] ")

    def close(self):
        """Close file handle with goodbye message"""
        if self._file_handle:
            end_time = datetime.now()
            elapsed = end_time - self._start_time
            goodbye = f"({end_time.strftime('%H:%M:%S')}  Ended session, elapsed {elapsed.total_seconds():.1f}s)"
            self.log(goodbye)
            self._file_handle.close()
            self._file_handle = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


# Global instance (set by the CLI)
_logger: Optional[FescueLogger] = None

def set_logger(logger: FescueLogger):
    """Set global logger instance"""
    global _logger
    _logger = logger

def get_logger() -> FescueLogger:
    """Get global logger instance"""
    global _logger
    if _logger is None:
        # Fallback: create stdout-only logger
        _logger = FescueLogger()
    return _logger

# Convenience functions
def log(msg: str):
    get_logger().log(msg)

def info(msg: str):
    get_logger().info(msg)

def warning(msg: str):
    get_logger().warning(msg)

def error(msg: str):
    get_logger().error(msg)

def debug(msg: str):
    get_logger().debug(msg)
