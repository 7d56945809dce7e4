"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus) and timestamp helpers
- task_store.py: SQLite-backed storage with overlap and due-reminder queries
- task_export.py: markdown export of the plan
- reminder_scheduler.py: polling loop that notifies due tasks
"""
