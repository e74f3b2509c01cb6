from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import TextIO


@dataclass
class Reporter:
    """
    Sink for user-facing progress messages.

    Interactive reporters print plain lines to `out`; otherwise messages go to the
    logger at INFO so they interleave with the rest of the log output.
    """

    logger: logging.Logger
    interactive: bool = False
    out: TextIO = field(default_factory=lambda: sys.stdout)

    def report(self, msg: str) -> None:
        if self.interactive:
            print(msg, file=self.out)
        else:
            self.logger.info("%s", msg)
