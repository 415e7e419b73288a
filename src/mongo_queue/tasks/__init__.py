"""
Task subsystem.

Components:
- task_models.py: data structures (TaskDocument, TaskError, TaskStatus, TaskUpdate)
- task_runner.py: execution engine (one runner per task, retry loop)
- mongo_storage.py: MongoDB-backed queue storage (enqueue, requeue, stop)
- scheduling.py: default asyncio scheduler
- task_log.py: front for the pluggable logger
"""
