import logging
import subprocess
import sys

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class SystemStrategy:
    """Base class defining the interface for desktop notifications.

    The generic strategy has no notifier and silently drops messages.
    """

    name = "generic"

    def notify(self, title: str, message: str) -> bool:
        """Sends a desktop notification.

        Args:
            title (str): The notification title.
            message (str): The notification body text.

        Returns:
            bool: True if a notifier accepted the message.
        """
        return False


class MacOSStrategy(SystemStrategy):
    """System strategy implementation for macOS."""

    name = "macos"

    def notify(self, title: str, message: str) -> bool:
        """Sends a notification with a sound using AppleScript."""
        # Sanitize quotes to prevent AppleScript syntax errors.
        clean_msg = message.replace('"', "'")
        clean_title = title.replace('"', "'")
        script = (
            f'display notification "{clean_msg}" with title "{clean_title}" '
            'sound name "default"'
        )
        try:
            res = subprocess.run(["osascript", "-e", script], stderr=subprocess.DEVNULL)
        except OSError as e:
            logger.debug(f"osascript unavailable: {e}")
            return False
        return res.returncode == 0


class LinuxStrategy(SystemStrategy):
    """System strategy implementation for Linux."""

    name = "linux"

    def notify(self, title: str, message: str) -> bool:
        """Sends a notification using `notify-send`."""
        try:
            res = subprocess.run(["notify-send", title, message], stderr=subprocess.DEVNULL)
        except FileNotFoundError:
            logger.debug("notify-send not found; notification dropped")
            return False
        return res.returncode == 0


def get_system() -> SystemStrategy:
    """Factory function to retrieve the platform-specific system strategy.

    Returns:
        SystemStrategy: An instance of MacOSStrategy, LinuxStrategy, or the base
        SystemStrategy depending on the operating system.
    """
    if sys.platform == "darwin":
        return MacOSStrategy()
    elif sys.platform.startswith("linux"):
        return LinuxStrategy()
    else:
        return SystemStrategy()
