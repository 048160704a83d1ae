"""Selection sub-package — what to play next and when to switch to it."""

from reactive_dj.selection.catalog import Catalog
from reactive_dj.selection.history import PlayHistory
from reactive_dj.selection.selector import CatalogSelector, SelectionResult, SelectorOptions
from reactive_dj.selection.transition import (
    TransitionAction,
    TransitionContext,
    TransitionDecision,
    TransitionEvaluator,
    TransitionOptions,
    TransitionPreconditionError,
)

__all__ = [
    "Catalog",
    "CatalogSelector",
    "PlayHistory",
    "SelectionResult",
    "SelectorOptions",
    "TransitionAction",
    "TransitionContext",
    "TransitionDecision",
    "TransitionEvaluator",
    "TransitionOptions",
    "TransitionPreconditionError",
]
