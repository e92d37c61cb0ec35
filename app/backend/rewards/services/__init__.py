"""
Business logic services.

Catalog selection, the task and earnings ledgers, task completion and the
allocation orchestrator that ties them together.
"""
