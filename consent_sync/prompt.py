"""
Presentation triggers - ask the user for a consent decision.

The coordinator only needs `prompt(title, message) -> ConsentStatus`.
ConsolePrompt is the terminal implementation used by the CLI; GUIs provide
their own trigger.
"""

import logging
import sys
from abc import ABC, abstractmethod
from typing import Callable, Optional, TextIO

from consent_sync.models import ConsentStatus

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Your consent"
DEFAULT_MESSAGE = (
    "{app_name} and its partners would like to process data about this device "
    "(including a device identifier) to improve the service.\n"
    "You can change your choice at any time."
)


class PresentationTrigger(ABC):
    """Shows the consent question and returns the user's answer."""

    @abstractmethod
    def prompt(self, title: Optional[str] = None, message: Optional[str] = None) -> ConsentStatus:
        """
        Ask the user.

        Returns:
            ACCEPTED or DENIED, or UNDEFINED if the user dismissed the question
        """


class ConsolePrompt(PresentationTrigger):
    """Asks for y/n on the terminal until a valid answer is given."""

    def __init__(
        self,
        app_name: str = "This application",
        input_func: Callable[[str], str] = input,
        output: TextIO = sys.stdout,
    ):
        self.app_name = app_name
        self._input = input_func
        self._output = output

    def prompt(self, title: Optional[str] = None, message: Optional[str] = None) -> ConsentStatus:
        title = title or DEFAULT_TITLE
        message = message or DEFAULT_MESSAGE.format(app_name=self.app_name)

        banner = f"================= {title.upper()} ================="
        print(banner, file=self._output)
        print(message, file=self._output)
        print("=" * len(banner), file=self._output)

        while True:
            try:
                ans = self._input("Do you accept? (y/n): ").strip().lower()
            except EOFError:
                logger.info("Consent prompt dismissed")
                return ConsentStatus.UNDEFINED
            if ans in ("y", "n"):
                return ConsentStatus.ACCEPTED if ans == "y" else ConsentStatus.DENIED
            print("Please type 'y' for yes or 'n' for no:", file=self._output)
