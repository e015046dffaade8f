from ai_fallback.utils.json_extract import extract_json

__all__ = ["extract_json"]
