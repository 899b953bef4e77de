from .readiness import BackendState, ReadinessController, IdleWatchdog, STATUS_RUNNING, STATUS_STARTING

__all__ = ["BackendState", "ReadinessController", "IdleWatchdog", "STATUS_RUNNING", "STATUS_STARTING"]
