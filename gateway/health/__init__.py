from .prober import HealthProber, NO_HEALTH_PATH_NOTE

__all__ = ["HealthProber", "NO_HEALTH_PATH_NOTE"]
