"""
QueryPilot Agents Module

Agents that answer a question over a database.

Available Agents:
    - BaseAgent: Abstract base class (timing, retries, bounded model calls)
    - QueryAgent: Tool-calling loop issuing execute_sql calls
    - StepPlanAgent: Plan-then-execute strategy with refinement
    - AnswerSynthesisAgent: Final answer from executed queries, with a
      deterministic fallback

Usage:
    from querypilot.agents import BaseAgent

    class MyAgent(BaseAgent):
        async def execute(self, input: AgentInput) -> AgentOutput:
            return AgentOutput(
                success=True,
                data={"result": "value"},
                metadata=self._create_metadata()
            )
"""

from querypilot.agents.base import BaseAgent
from querypilot.agents.query_agent import QueryAgent
from querypilot.agents.step_planner import StepPlanAgent
from querypilot.agents.synthesis import AnswerSynthesisAgent

__all__ = [
    "BaseAgent",
    "QueryAgent",
    "StepPlanAgent",
    "AnswerSynthesisAgent",
]
