"""Exception types raised by dejumble."""


class DejumbleError(Exception):
    """Base class for every error raised by dejumble."""


class PatternMismatch(DejumbleError):
    """An expected obfuscation shape is absent or only partially matched."""


class InconsistentCount(PatternMismatch):
    """An order-string's entry count disagrees with the switch-case count."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"order has {actual} entries but the switch has {expected} cases"
        )
        self.expected = expected
        self.actual = actual


class UnsupportedBindingShape(DejumbleError):
    """A declaration target is neither a name nor a recognized member chain."""


class TreeEditError(DejumbleError):
    """A tree edit was requested that cannot be applied at this position."""


class ParseError(DejumbleError):
    """The source text could not be parsed."""


class GenerateError(DejumbleError):
    """The tree could not be printed back to source text."""
