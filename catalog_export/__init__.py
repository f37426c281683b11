"""
Export a categorized document catalog to a CSV report and deliver it.

Directory routes ("Root@Child@Leaf") are resolved breadth-first from the
flat directories endpoint, documents are fetched per scope with their
side-loaded owner/target records, and the resulting rows are delivered as
<prefix>_<YYYYMMDD>.csv to a local directory or an upload endpoint.
"""

from .config import ExportConfig, load_config
from .handler import RunStatus, handler, run

__all__ = ["ExportConfig", "RunStatus", "handler", "load_config", "run"]
