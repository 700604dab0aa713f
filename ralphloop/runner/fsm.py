"""Cycle state machine using transitions library.

One machine lives for a whole invocation and walks:

    select_next -> load_detail -> produce -> verify -> commit -> select_next ...

until it lands in `terminated`. Triggers are named after what just happened,
so the loop reads as a sequence of facts:

    fsm.item_selected()
    fsm.detail_loaded()
    fsm.produced()
    fsm.verified()
    fsm.committed()
"""

import logging
from typing import Callable

from transitions import Machine

logger = logging.getLogger(__name__)


STATES = [
    "select_next",
    "load_detail",
    "produce",
    "verify",
    "commit",
    "terminated",
]

ACTIVE_STATES = [s for s in STATES if s != "terminated"]

TRANSITIONS = [
    # Selection
    {"trigger": "item_selected", "source": "select_next", "dest": "load_detail"},
    {"trigger": "no_pending", "source": "select_next", "dest": "terminated"},
    {"trigger": "cap_reached", "source": "select_next", "dest": "terminated"},

    # Detail lookup; a missing item means ledger and store drifted apart
    {"trigger": "detail_loaded", "source": "load_detail", "dest": "produce"},
    {"trigger": "desync", "source": "load_detail", "dest": "terminated"},

    # External agent
    {"trigger": "produced", "source": "produce", "dest": "verify"},

    # Verification outcomes; a crashed agent fails the cycle from produce
    {"trigger": "verified", "source": "verify", "dest": "commit"},
    {"trigger": "retry", "source": ["produce", "verify"], "dest": "select_next"},
    {"trigger": "give_up", "source": ["produce", "verify"], "dest": "terminated"},

    # After the ledger write
    {"trigger": "committed", "source": "commit", "dest": "select_next"},
    {"trigger": "finish", "source": "commit", "dest": "terminated"},

    # Fatal error anywhere
    {"trigger": "abort", "source": ACTIVE_STATES, "dest": "terminated"},
]


class CycleFSM:
    """State machine for the select/produce/verify/commit cycle.

    Keeps a history of (from_state, to_state, trigger) for the run report.
    """

    def __init__(self, on_transition: Callable[[str, str, str], None] | None = None):
        self.on_transition = on_transition
        self.history: list[tuple[str, str, str]] = []

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial="select_next",
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.debug(f"[cycle] {from_state} -> {to_state} ({trigger})")
        self.history.append((from_state, to_state, trigger))

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    @property
    def terminated(self) -> bool:
        return self.state == "terminated"

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)
