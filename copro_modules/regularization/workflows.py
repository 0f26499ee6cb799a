"""Regularization Workflows.

``pending -> sent -> paid``.  No transition skips a state and ``paid`` is
terminal.
"""

from copro_kernel.domain.workflow import Transition, Workflow

REGULARIZATION_WORKFLOW = Workflow(
    name="regularization",
    description="Tenant charge regularization lifecycle",
    initial_state="pending",
    states=("pending", "sent", "paid"),
    transitions=(
        Transition("pending", "sent", action="send"),
        Transition("sent", "paid", action="mark_paid"),
    ),
    terminal_states=("paid",),
)
