"""
SpeechPlay v1.2: Safety Gate Package

Event → Signals → State → Level → Interventions → Config → Response.
Every stage except the orchestrator is a pure function of its inputs.
"""
from speechplay.gate.level_assessor import assess
from speechplay.gate.interventions import select
from speechplay.gate.config_adapter import adapt
from speechplay.gate.state_updater import StateUpdater, initial_state
from speechplay.gate.orchestrator import Orchestrator

__all__ = ["assess", "select", "adapt", "StateUpdater", "initial_state", "Orchestrator"]
