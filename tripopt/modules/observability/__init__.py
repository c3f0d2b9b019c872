from tripopt.modules.observability.logger import StructuredLogger

__all__ = ["StructuredLogger"]
