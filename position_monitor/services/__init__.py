"""Service modules"""
from .alerts import AlertDispatcher
from .change_detection import ChangePolicy
from .monitor import Monitor
from .pipeline import MonitoringPipeline, PipelineOutcome, PipelineStatus

__all__ = [
    "AlertDispatcher",
    "ChangePolicy",
    "Monitor",
    "MonitoringPipeline",
    "PipelineOutcome",
    "PipelineStatus",
]
