from dataclasses import dataclass


class ChiSegError(Exception):
    """Base class for errors raised while segmenting chi profiles"""


class InvalidProfileError(ChiSegError, ValueError):
    """Channel profile arrays are malformed"""


class DegenerateRangeError(ChiSegError):
    """A fit was requested over a range with no chi variation"""

    def __init__(self, start, end):
        self.start = start
        self.end = end
        super().__init__(f"No chi variation in node range [{start}, {end})")


class InsufficientProfileLengthError(ChiSegError):
    """The profile holds fewer nodes than a segment needs"""

    def __init__(self, n_nodes, required):
        self.n_nodes = n_nodes
        self.required = required
        super().__init__(
            f"Profile has {n_nodes} nodes, at least {required} are required"
        )


@dataclass(frozen=True)
class DuplicateNodeConflict:
    """
    A node reached by more than one channel. Recorded by the merge, never
    raised.
    """

    node: int
    kept_channel: object
    incoming_channel: object
    policy: str

    def __str__(self):
        return (
            f"node {self.node} from channel {self.incoming_channel} already "
            f"written by channel {self.kept_channel}, resolved by '{self.policy}'"
        )
