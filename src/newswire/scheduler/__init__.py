from newswire.scheduler.scheduler_config import create_scheduler, MonitorJobConfig

__all__ = ["create_scheduler", "MonitorJobConfig"]
