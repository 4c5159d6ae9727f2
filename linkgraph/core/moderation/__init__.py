"""Edge moderation: lifecycle transitions, undo and batch decisions."""

from linkgraph.core.moderation.edge_state_machine import (
    EdgeStateMachine,
    find_undo_target,
    replay_state,
)

__all__ = [
    "EdgeStateMachine",
    "find_undo_target",
    "replay_state",
]
