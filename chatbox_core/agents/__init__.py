from chatbox_core.agents.orchestrator import TurnOrchestrator

__all__ = ["TurnOrchestrator"]
