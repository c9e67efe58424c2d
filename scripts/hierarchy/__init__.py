from .builder import *  # re-export public API
from .export import build_graph, export_graph_json, export_graphml
from .queries import ancestors, descendants, filtered_generations, lineage_path

__all__ = [name for name in globals().keys() if not name.startswith("_")]
