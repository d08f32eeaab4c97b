"""Exception types raised by tapegrad."""


class TapeError(Exception):
    """Base class for failures of the tape and the backward pass."""


class NotOnTapeError(TapeError):
    """The differentiation target was never recorded as the output of a node."""

    def __init__(self, tensor_id):
        self.tensor_id = tensor_id
        super().__init__(
            f"Cannot compute gradient: tensor {tensor_id} is not part of this tape."
        )


class MissingGradientFunctionError(TapeError):
    """A node on the path from the sources to the target has no local gradient."""

    def __init__(self, op_name: str):
        self.op_name = op_name
        super().__init__(
            f"Cannot compute gradient: gradient function not found for {op_name}."
        )


class DuplicateOutputError(TapeError):
    """A tensor already has a producing node on the tape."""

    def __init__(self, tensor_id, op_name: str):
        self.tensor_id = tensor_id
        self.op_name = op_name
        super().__init__(
            f"Tensor {tensor_id} produced by {op_name} already has a producer on this tape."
        )


class GradientInvariantError(TapeError):
    """Internal consistency failure during the backward pass."""


class DisposedError(RuntimeError):
    """A disposed tensor or released storage was accessed."""


class GradientCheckError(AssertionError):
    """Analytical and numerical gradients disagree."""
