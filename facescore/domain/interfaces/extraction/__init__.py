from .backend import ExtractionBackend

__all__ = ["ExtractionBackend"]
