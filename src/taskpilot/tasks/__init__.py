"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Subtask, TaskStatus, TaskPriority, ProposedTask)
- task_ids.py: identifier allocation derived from store contents
- task_store.py: JSON-document storage + mutation helpers
- task_graph.py: dependency satisfaction, cycle detection, status lifecycle
- task_scheduler.py: next actionable task selection
- task_revision.py: integrity-checked replacement of the future segment
- task_api.py: high-level operations that combine the store with the LLM generator
"""
