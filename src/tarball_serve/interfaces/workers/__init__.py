from .refresh_worker import RefreshWorkerConfig, RegistryRefreshWorker

__all__ = ["RefreshWorkerConfig", "RegistryRefreshWorker"]
