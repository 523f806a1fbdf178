# Message-passing transport for the boolean engine
from surface_boolean.workers.boolean_worker import SurfaceBooleanWorker, handle_message

__all__ = [
    'SurfaceBooleanWorker',
    'handle_message',
]
