"""Pure domain value objects: clock and workflow state machines."""
