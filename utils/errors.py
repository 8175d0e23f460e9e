"""Custom exceptions for code generation and issuance."""


def format_number(value) -> str:
    """Whole-number floats print without the trailing ".0", anything else prints in full."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class CodeGenerationError(Exception):
    """Base exception for code generation errors."""
    pass


class InvalidOptionsError(CodeGenerationError, ValueError):
    """Raised when generator options or arguments break a precondition."""
    pass


class CapacityExceededError(CodeGenerationError):
    """Raised when a fixed-width template cannot yield the requested codes."""

    def __init__(self, requested: int, maximum: int, existing: int, sparsity: float):
        self.requested = requested
        self.maximum = maximum
        self.existing = existing
        self.sparsity = sparsity
        super().__init__(
            f"Cannot generate {requested} codes. "
            f"Maximum: {maximum}, existing: {existing}, sparsity: {format_number(sparsity)}"
        )


class AttemptsExhaustedError(CodeGenerationError):
    """Raised when too many consecutive candidates collide with taken codes."""

    def __init__(self, generated: int, requested: int, collisions: int):
        self.generated = generated
        self.requested = requested
        self.collisions = collisions
        super().__init__(
            f"Gave up after {collisions} consecutive collisions "
            f"with {generated} of {requested} codes generated"
        )


class UnknownBatchError(CodeGenerationError):
    """Raised when a batch ID does not exist in the code store."""
    pass
