"""Budget Workflows.

State machine for the annual budget lifecycle.  Lines may only change in
``draft``; ``voted`` is stamped by the general assembly vote.
"""

from copro_kernel.domain.workflow import Guard, Transition, Workflow
from copro_kernel.logging_config import get_logger

logger = get_logger("modules.budget.workflows")


VOTED_BY_ASSEMBLY = Guard("voted_by_assembly", "Budget approved by the general assembly")


BUDGET_WORKFLOW = Workflow(
    name="budget",
    description="Annual budget lifecycle",
    initial_state="draft",
    states=("draft", "voted", "active", "closed"),
    transitions=(
        Transition("draft", "voted", action="vote", guard=VOTED_BY_ASSEMBLY),
        Transition("voted", "active", action="activate"),
        Transition("active", "closed", action="close"),
    ),
    terminal_states=("closed",),
)

logger.debug("budget_workflow_registered", extra={
    "workflow_name": BUDGET_WORKFLOW.name,
    "state_count": len(BUDGET_WORKFLOW.states),
})
