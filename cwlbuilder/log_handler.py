import logging

dateFormat = "%(asctime)s"
levelFormat = " %(levelname)-8s"
msgFormat = "%(message)s"


class CustomFormatter(logging.Formatter):
    grey = "\x1b[38;20m"
    green = "\x1b[32m"
    bold_green = "\x1b[1;32m"
    yellow = "\x1b[33;20m"
    bold_yellow = "\x1b[33;1m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"

    FORMATS = {
        logging.DEBUG: green + dateFormat + reset + levelFormat + msgFormat + reset,
        logging.INFO: green
        + dateFormat
        + bold_green
        + levelFormat
        + reset
        + msgFormat
        + reset,
        logging.WARNING: yellow
        + dateFormat
        + bold_yellow
        + levelFormat
        + reset
        + yellow
        + msgFormat
        + reset,
        logging.ERROR: red
        + dateFormat
        + bold_red
        + levelFormat
        + reset
        + red
        + msgFormat
        + reset,
        logging.CRITICAL: red
        + dateFormat
        + reset
        + bold_red
        + levelFormat
        + msgFormat
        + reset,
    }

    def format(self, record):
        return logging.Formatter(self.FORMATS.get(record.levelno)).format(record)


class HighlitingFilter(logging.Filter):
    bold_green = "\x1b[1;32m"
    bold_yellow = "\x1b[33;1m"
    bold_red = "\x1b[31;1m"
    bold_blue = "\x1b[1;34m"
    red = "\x1b[31;20m"
    reset = "\x1b[0m"

    patterns = {
        "CANCELLED": 3,
        "FAILED": 3,
        "SKIPPED": 2,
        "COMPLETED": 1,
        "DISPATCHING": 0,
        "EMITTING": 0,
        "SUBMITTING": 0,
    }

    def filter(self, record):
        record.msg = self.highlight(record.msg)
        return True

    def highlight(self, msg):
        msg_tok = str(msg).split()
        if not msg_tok:
            return msg
        if (category := self.patterns.get(msg_tok[0])) is not None:
            match category:
                case 0:
                    color, restore = self.bold_blue, ""
                case 1:
                    color, restore = self.bold_green, ""
                case 2:
                    color, restore = self.bold_yellow, ""
                case _:
                    # Failures are logged at error level, so plain red is restored after the token
                    color, restore = self.bold_red, self.red
            msg_tok[0] = color + msg_tok[0] + self.reset + restore
        return " ".join(msg_tok)


logger = logging.getLogger("cwlbuilder")
defaultStreamHandler = logging.StreamHandler()
formatter = logging.Formatter(
    fmt="%(asctime)s.%(msecs)03d %(levelname)-8s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
defaultStreamHandler.setFormatter(formatter)
logger.addHandler(defaultStreamHandler)
logger.setLevel(logging.INFO)
logger.propagate = False
