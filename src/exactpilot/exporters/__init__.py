"""Exporters package — write fetched records to files."""
from exactpilot.exporters.tabular import default_filename, export_records, to_frame

__all__ = ["default_filename", "export_records", "to_frame"]
