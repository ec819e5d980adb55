from workplan.state.store import PlanStore

__all__ = ["PlanStore"]
