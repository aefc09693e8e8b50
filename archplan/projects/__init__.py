from .state_machine import TRANSITIONS, ProjectStateMachine, can_transition

__all__ = ["TRANSITIONS", "ProjectStateMachine", "can_transition"]
