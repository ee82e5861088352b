"""Errors raised while framing, validating and decoding telegrams."""


class DsmrError(Exception):
    """Base class for per-frame and per-line telegram errors."""


class FramingError(DsmrError):
    """A frame boundary was malformed or the frame grew past the size bound."""


class ChecksumMismatch(DsmrError):
    """The CRC16 trailer does not match the frame contents."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"checksum mismatch: trailer={expected} computed={actual}")
        self.expected = expected
        self.actual = actual


class ParseError(DsmrError):
    """A single telegram line could not be decoded."""

    def __init__(self, line_number: int, offset: int, line: str, reason: str) -> None:
        super().__init__(f"line {line_number} (offset {offset}): {reason}: {line!r}")
        self.line_number = line_number
        self.offset = offset
        self.line = line
        self.reason = reason


class CounterRegression(DsmrError):
    """A counter reading went backwards and was not applied."""

    def __init__(
        self, metric: str, labels: tuple[tuple[str, str], ...], previous: float, rejected: float
    ) -> None:
        label_text = ",".join(f"{k}={v}" for k, v in labels)
        super().__init__(
            f"{metric}{{{label_text}}} went backwards: kept {previous}, rejected {rejected}"
        )
        self.metric = metric
        self.labels = labels
        self.previous = previous
        self.rejected = rejected
