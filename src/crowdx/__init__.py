"""CrowdX: transparent reactive state for nested Python data."""

from importlib.metadata import version as _version

__version__ = _version("crowdx")

from crowdx._tracking import get_pending_count, set_max_flush_rounds
from crowdx.errors import CrowdXError, ReactionCycleError, TrackingError
from crowdx.observable import ObservableList, ObservableDict, is_observable, to_plain, wrap
from crowdx.reaction import Reaction, autorun, dispose, reaction
from crowdx.computed import Computed, computed
from crowdx.action import action, transaction
from crowdx.store import Store
# hot_reload and textual NOT auto-imported — opt-in only

__all__ = [
    "wrap",
    "is_observable",
    "to_plain",
    "ObservableDict",
    "ObservableList",
    "Reaction",
    "reaction",
    "autorun",
    "dispose",
    "Computed",
    "computed",
    "action",
    "transaction",
    "Store",
    "get_pending_count",
    "set_max_flush_rounds",
    "CrowdXError",
    "TrackingError",
    "ReactionCycleError",
]
