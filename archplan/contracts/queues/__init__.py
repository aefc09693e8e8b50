from .plan_generation import PlanGenerationMessage, PlanGenerationResult

__all__ = ["PlanGenerationMessage", "PlanGenerationResult"]
