# Service Layer

from leadexport.services.export_service import ExportService

__all__ = [
    "ExportService",
]
