from .task_store_memory_impl import InMemoryTaskStore
from .task_store_postgres_impl import PostgresTaskStore
from .workflow_driver_impl import WorkflowDriver

__all__ = [
    'InMemoryTaskStore',
    'PostgresTaskStore',
    'WorkflowDriver',
]
