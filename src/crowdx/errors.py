"""CrowdX error hierarchy.

All crowdx-specific errors inherit from CrowdXError for easy catching.
Exceptions raised by tracked or effect functions are never wrapped; they
propagate unchanged.
"""


class CrowdXError(Exception):
    """Base error for all crowdx operations."""


class TrackingError(CrowdXError):
    """A tracked function started while another one was still running."""


class ReactionCycleError(CrowdXError):
    """Reactions kept re-triggering each other and the flush never settled."""
