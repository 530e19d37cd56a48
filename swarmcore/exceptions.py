"""Custom exception hierarchy for swarmcore."""


class SwarmError(Exception):
    """Base for all swarmcore errors."""


class StimulusError(SwarmError):
    """A stimulus event could not be built or routed."""


class AllianceValidationError(SwarmError):
    """An alliance proposal violates a formation rule."""


class ReflectionError(SwarmError):
    """A reflection cycle could not complete."""
