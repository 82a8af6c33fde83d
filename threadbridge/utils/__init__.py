"""Utility helpers."""

from threadbridge.utils.helpers import ensure_dir, get_data_path, today_date

__all__ = ["ensure_dir", "get_data_path", "today_date"]
