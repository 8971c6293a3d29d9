"""
taskpilot: a task graph engine.

Tasks and their subtasks live in one JSON document; the engine allocates ids,
checks dependencies, picks the next actionable task and merges LLM-proposed
revisions of the not-yet-started part of the plan.
"""

__version__ = "0.1.0"
