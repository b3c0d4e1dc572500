from flow_orchestrator.models.factory.Nodes.BaseNodeModel import BaseNodeModel


class EventNodeModel(BaseNodeModel):
    """
    Declared event node.

    Attributes:
        ref: Name of the external channel (defaults to the node name)
        once: Only the first occurrence is legal for the run's lifetime
    """
    once: bool = False
