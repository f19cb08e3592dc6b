from .main import dedupe_leads, merge_segment_leads, merge_sources

__all__ = ["merge_segment_leads", "dedupe_leads", "merge_sources"]
