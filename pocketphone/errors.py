"""Error taxonomy for the reply pipeline.

Every error here is fatal to the current turn and is raised before the turn
writes anything to the conversation log.
"""


class PipelineError(Exception):
    """Base class for errors that abort a generation turn."""


class MissingPersonaError(PipelineError):
    """The contact has no usable name or persona to compose a prompt from."""


class GatewayError(PipelineError):
    """Base class for model endpoint failures."""


class GatewayUnavailable(GatewayError):
    """Transport failure, timeout, or a non-success HTTP status."""


class MalformedReply(GatewayError):
    """The endpoint answered, but not with a readable chat completion."""
