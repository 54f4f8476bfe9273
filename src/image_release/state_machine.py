"""Release state machine using the ``transitions`` library.

Defines 7 states and 6 triggers.  Every forward trigger is guarded by the
``stage_succeeded`` condition, and ``fail`` is reachable from every
non-terminal state.
"""

from __future__ import annotations

import logging
from typing import Any

from transitions.extensions.asyncio import AsyncMachine

from src.image_release.models import ReleaseStage

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------
STATES: list[str] = [stage.value for stage in ReleaseStage]

TERMINAL_STATES: frozenset[str] = frozenset(
    {ReleaseStage.DONE.value, ReleaseStage.FAILED.value}
)

# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
TRANSITIONS: list[dict[str, Any]] = [
    {
        "trigger": "authenticate",
        "source": ReleaseStage.RESOLVING.value,
        "dest": ReleaseStage.AUTHENTICATING.value,
        "conditions": ["stage_succeeded"],
    },
    {
        "trigger": "build",
        "source": ReleaseStage.AUTHENTICATING.value,
        "dest": ReleaseStage.BUILDING.value,
        "conditions": ["stage_succeeded"],
    },
    {
        "trigger": "push",
        "source": ReleaseStage.BUILDING.value,
        "dest": ReleaseStage.PUSHING.value,
        "conditions": ["stage_succeeded"],
    },
    {
        "trigger": "publish",
        "source": ReleaseStage.PUSHING.value,
        "dest": ReleaseStage.PUBLISHING.value,
        "conditions": ["stage_succeeded"],
    },
    {
        "trigger": "finish",
        "source": ReleaseStage.PUBLISHING.value,
        "dest": ReleaseStage.DONE.value,
        "conditions": ["stage_succeeded"],
    },
    {
        "trigger": "fail",
        "source": [
            ReleaseStage.RESOLVING.value,
            ReleaseStage.AUTHENTICATING.value,
            ReleaseStage.BUILDING.value,
            ReleaseStage.PUSHING.value,
            ReleaseStage.PUBLISHING.value,
        ],
        "dest": ReleaseStage.FAILED.value,
    },
]

# ---------------------------------------------------------------------------
# Forward trigger per state
# ---------------------------------------------------------------------------
NEXT_TRIGGER: dict[str, str] = {
    ReleaseStage.RESOLVING.value: "authenticate",
    ReleaseStage.AUTHENTICATING.value: "build",
    ReleaseStage.BUILDING.value: "push",
    ReleaseStage.PUSHING.value: "publish",
    ReleaseStage.PUBLISHING.value: "finish",
}


def create_release_machine(
    model: Any, initial_state: str = ReleaseStage.RESOLVING.value
) -> AsyncMachine:
    """Create and return an ``AsyncMachine`` bound to *model*.

    The model must implement ``stage_succeeded``.

    Args:
        model: The object whose state the machine manages.
        initial_state: The initial state for the machine.

    Returns:
        Configured ``AsyncMachine`` instance.
    """
    machine = AsyncMachine(
        model=model,
        states=STATES,
        transitions=TRANSITIONS,
        initial=initial_state,
        auto_transitions=False,
        send_event=True,
        queued=True,
        ignore_invalid_triggers=True,
    )
    return machine
