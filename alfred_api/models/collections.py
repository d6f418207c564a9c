"""MongoDB collection names."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Collections:
    WORKFLOWS = "workflows"                # Workflow registry (_id = workflow id)
    CONNECTIONS = "connections"            # Connection catalog (_id = name)
    TOOLKIT_GATEWAYS = "toolkit_gateways"  # Shared toolkit gateways (_id = toolkit)
    STEP_GATEWAYS = "step_gateways"        # Per-step gateways (_id = "{workflow_id}:{step_order}")


COLLECTIONS = Collections()
