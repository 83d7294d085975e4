from __future__ import annotations

from rlprobe.report.summary import render_text, summary_dict, write_json

__all__ = ["render_text", "summary_dict", "write_json"]
