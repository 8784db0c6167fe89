class BlobNetError(Exception):
    """Base class for all errors raised by blobnet."""


class ConfigurationError(BlobNetError, ValueError):
    """A layer or net was configured inconsistently. Raised before any forward pass."""


class ShapeMismatchError(ConfigurationError):
    pass


class UnboundSymbolError(ConfigurationError):
    pass


class TrainabilityError(ConfigurationError):
    """A diff slot was supplied for a fixed input, or omitted for a trainable one."""


class BackendError(BlobNetError, RuntimeError):
    pass
